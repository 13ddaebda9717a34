"""Error taxonomy shared by the service clients, the orchestrator and the HTTP layer."""

from typing import Any, Optional


class ProjecticaError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def __str__(self) -> str:
        return self.message


class Unauthenticated(ProjecticaError):
    status_code = 401

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class InvalidRequest(ProjecticaError):
    status_code = 400


class NotFound(ProjecticaError):
    status_code = 404


class ServiceError(ProjecticaError):
    """An outbound AI service returned a non-success status or an unusable payload."""

    def __init__(self, message: str, upstream_status: Optional[int] = None, detail: Any = None):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.detail = detail


class RunFailed(ProjecticaError):
    def __init__(self, message: str = "Assistant run failed", run_id: Optional[str] = None):
        super().__init__(message)
        self.run_id = run_id


class RunTimeout(ProjecticaError):
    def __init__(self, message: str = "Analysis timed out", run_id: Optional[str] = None, attempts: int = 0):
        super().__init__(message)
        self.run_id = run_id
        self.attempts = attempts


class RunCancelled(ProjecticaError):
    def __init__(self, message: str = "Assistant run cancelled", run_id: Optional[str] = None):
        super().__init__(message)
        self.run_id = run_id
