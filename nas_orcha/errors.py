"""
Error taxonomy for the NAS App Orchestrator.

Errors raised before a task is dispatched reach the caller (and the HTTP
layer maps ``status_code`` to a response). Errors raised while a task runs
are captured by the scheduler and stored as the task's ``error_detail``.
"""


class OrchestratorError(Exception):
    """Base class for all orchestrator errors."""
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'error': self.message, 'type': self.__class__.__name__}


class ValidationError(OrchestratorError):
    """Request rejected before a task was created."""
    status_code = 400


class UnsupportedApplication(ValidationError):
    def __init__(self, app_id: str):
        super().__init__(f"Unsupported application: {app_id}")
        self.app_id = app_id


class UnsupportedBundle(ValidationError):
    def __init__(self, bundle_id: str):
        super().__init__(f"Unsupported application bundle: {bundle_id}")
        self.bundle_id = bundle_id


class UnsupportedAction(ValidationError):
    def __init__(self, action: str):
        super().__init__(f"Unsupported task action: {action}")
        self.action = action


class NotRetryable(ValidationError):
    def __init__(self, task_id: int, status: str = None):
        detail = f" (status: {status})" if status else ""
        super().__init__(f"Only failed tasks can be retried: task #{task_id}{detail}")
        self.task_id = task_id


class ConflictError(OrchestratorError):
    """The target already exists."""
    status_code = 409


class NotFoundError(OrchestratorError):
    """The target container or task does not exist."""
    status_code = 404


class UpstreamError(OrchestratorError):
    """The container runtime or the application itself misbehaved."""
    status_code = 502


class TaskStateError(OrchestratorError):
    """A task record was asked to move backwards or past a terminal state."""
    status_code = 409
