class TimekeeperError(Exception):
    """Base class for errors raised by timekeeper."""


class RecordNotFound(TimekeeperError):
    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} {record_id} not found")
        self.kind = kind
        self.record_id = record_id


class VersionConflict(TimekeeperError):
    """The record changed since the caller last read it."""

    def __init__(self, kind: str, record_id: str, expected: int, actual: int):
        super().__init__(
            f"{kind} {record_id} is at version {actual}, expected {expected}"
        )
        self.kind = kind
        self.record_id = record_id
        self.expected = expected
        self.actual = actual


class AuthenticationError(TimekeeperError):
    pass


class TimerValidationError(TimekeeperError):
    """Raised when the running timer cannot be stopped as requested."""


class InvalidRecord(TimekeeperError):
    """The store rejected a write, e.g. a required column left empty."""

    def __init__(self, kind: str, detail: str):
        super().__init__(f"invalid {kind}: {detail}")
        self.kind = kind
        self.detail = detail
