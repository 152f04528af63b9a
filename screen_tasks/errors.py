"""Exception taxonomy for the task engine.

Verification and actuator failures are normally recovered inside the
engine (they drive the correction path); the exception types exist so
collaborators and repositories can signal them explicitly.
"""


class EngineError(Exception):
    """Base class for all engine errors."""

    code = "ENGINE_ERROR"
    retryable = False


class ValidationError(EngineError):
    """Malformed ids or inputs. Never retried."""

    code = "VALIDATION_ERROR"


class NotFoundError(EngineError):
    """A task, session or skill does not exist."""

    code = "NOT_FOUND"


class TaskNotFoundError(NotFoundError):
    code = "TASK_NOT_FOUND"

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class SessionNotFoundError(NotFoundError):
    code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class InvalidTaskState(EngineError):
    """Operation is not valid for the task's current status."""

    code = "INVALID_TASK_STATE"

    def __init__(self, message: str, current_status: str | None = None):
        super().__init__(message)
        self.current_status = current_status


class VerificationFailed(EngineError):
    """The expected outcome of a step was not met."""

    code = "VERIFICATION_FAILED"


class ActuatorError(EngineError):
    """The remote actuator failed to apply an action."""

    code = "ACTUATOR_ERROR"


class PersistenceConflict(EngineError):
    """Unique-constraint violation, e.g. a second write for the same step index."""

    code = "PERSISTENCE_CONFLICT"

    def __init__(self, message: str, key: tuple | None = None):
        super().__init__(message)
        self.key = key


class ProposalError(EngineError):
    """The action proposer returned nothing usable (malformed or empty output)."""

    code = "PROPOSAL_ERROR"
    retryable = True
