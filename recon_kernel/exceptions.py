"""
Typed exception hierarchy for the reconciliation kernel.

Every error has a typed class (catch by type, not message), a ``code``
class attribute (machine-readable), and carries its context as attributes
so it survives structured logging.

    ReconKernelError (base)
    |
    +-- ConfigError
    |   +-- ConfigValidationError
    |   +-- ConfigNotFoundError
    |
    +-- IntakeError
    |   +-- MalformedRecordError
    |
    +-- SchedulerError
    |   +-- SchedulerClosedError
    |
    +-- SessionRunError
        +-- DuplicateSessionKeyError

Code                    | When raised
------------------------|------------------------------------------------
CONFIG_VALIDATION_FAILED| Thresholds or routing categories are invalid
CONFIG_NOT_FOUND        | Configuration file does not exist
MALFORMED_RECORD        | An input row is missing or has an invalid field
SCHEDULER_CLOSED        | Change notified after the scheduler was shut down
DUPLICATE_SESSION_KEY   | Two snapshots in one multi-session run share a key

Engines never let these escape for validly shaped input.
``MalformedRecordError`` is raised by record parsing and converted into a
``data_quality`` discrepancy at the intake boundary.
"""


class ReconKernelError(Exception):
    """
    Base exception for all reconciliation kernel errors.

    All subclasses must have a ``code`` class attribute.
    """

    code: str = "RECON_KERNEL_ERROR"


# Configuration exceptions


class ConfigError(ReconKernelError):
    """Base exception for configuration errors."""

    code: str = "CONFIG_ERROR"


class ConfigValidationError(ConfigError):
    """Configuration loaded but failed validation."""

    code: str = "CONFIG_VALIDATION_FAILED"

    def __init__(self, errors: list[str], source: str | None = None):
        self.errors = errors
        self.source = source
        where = f" in {source}" if source else ""
        super().__init__(
            f"Configuration invalid{where}: {len(errors)} error(s): "
            + "; ".join(errors)
        )


class ConfigNotFoundError(ConfigError):
    """Configuration file does not exist."""

    code: str = "CONFIG_NOT_FOUND"

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Configuration file not found: {path}")


# Intake exceptions


class IntakeError(ReconKernelError):
    """Base exception for input record errors."""

    code: str = "INTAKE_ERROR"


class MalformedRecordError(IntakeError):
    """An input record is missing a required field or has an invalid value."""

    code: str = "MALFORMED_RECORD"

    def __init__(self, stream: str, field: str, reason: str, identifier: str | None = None):
        self.stream = stream
        self.field = field
        self.reason = reason
        self.identifier = identifier
        super().__init__(f"Malformed {stream} record: field '{field}' {reason}")


# Scheduler exceptions


class SchedulerError(ReconKernelError):
    """Base exception for recompute scheduler errors."""

    code: str = "SCHEDULER_ERROR"


class SchedulerClosedError(SchedulerError):
    """A change was notified after the scheduler was shut down."""

    code: str = "SCHEDULER_CLOSED"

    def __init__(self, session_key: str):
        self.session_key = session_key
        super().__init__(f"Scheduler closed; cannot schedule session {session_key}")


# Session run exceptions


class SessionRunError(ReconKernelError):
    """Base exception for multi-session run errors."""

    code: str = "SESSION_RUN_ERROR"


class DuplicateSessionKeyError(SessionRunError):
    """The same session key was submitted more than once in one run."""

    code: str = "DUPLICATE_SESSION_KEY"

    def __init__(self, session_keys: list[str]):
        self.session_keys = session_keys
        super().__init__(f"Duplicate session keys: {', '.join(session_keys)}")
