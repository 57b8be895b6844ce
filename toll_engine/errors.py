"""Error taxonomy shared by the pricing and reconciliation engines."""
from __future__ import annotations


class TollEngineError(Exception):
    """Base class; ``code`` is the stable identifier surfaced to API callers."""

    code = "toll_engine_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(TollEngineError):
    """A fee rule is unparsable or internally inconsistent."""

    code = "configuration_error"

    def __init__(self, message: str, rule_id: str | None = None) -> None:
        super().__init__(message)
        self.rule_id = rule_id


class ValidationError(TollEngineError):
    """Malformed engine input, such as a record without a key or a non-numeric amount."""

    code = "validation_error"

    def __init__(self, message: str, record: str | None = None) -> None:
        super().__init__(message)
        self.record = record


class RunNotFoundError(TollEngineError):
    code = "run_not_found"

    def __init__(self, run_id: str) -> None:
        super().__init__(f"Reconciliation run {run_id!r} does not exist")
        self.run_id = run_id
