"""Exceptions raised by the upstream collaborators (sports data, oracle).

Parsing, pick selection and grading never raise; only true I/O does.
"""


class UpstreamError(RuntimeError):
    """Match-context provider unreachable or returned an unusable payload."""


class OracleError(RuntimeError):
    """Generative oracle call failed."""


class OracleConfigError(OracleError):
    """Oracle is not configured (missing API key)."""
