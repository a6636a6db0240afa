"""Exception types raised by the pipeline engine."""


class PipelineError(Exception):
    """Base class for every error the engine raises on purpose."""


class StageError(PipelineError, ValueError):
    """A structural stage operation was rejected."""

    def __init__(self, stage_id: str, message: str) -> None:
        super().__init__(message)
        self.stage_id = stage_id


class UnknownStageError(StageError):
    """The stage id is not present in the registry."""


class StageLockedError(StageError):
    """The stage is locked against this operation."""


class StageNotEmptyError(StageError):
    """The stage still holds candidates."""


class UnsupportedActionError(PipelineError, ValueError):
    """A bulk action name has no handler."""


class BackendError(PipelineError, RuntimeError):
    """The application-data service failed or rejected a call.

    ``status`` is the HTTP status code, or None for transport failures.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
