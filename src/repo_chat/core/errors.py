from typing import Any


class RepoChatError(Exception):
    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause

    @property
    def message(self) -> str:
        return str(self.args[0])

    def __str__(self) -> str:
        if self.cause:
            return f"{self.args[0]} (caused by: {self.cause})"
        return str(self.args[0])


class ConnectionError(RepoChatError):
    pass


class GraphError(RepoChatError):
    pass


class StorageError(RepoChatError):
    pass


class ValidationError(RepoChatError):
    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class LockBusyError(RepoChatError):
    def __init__(self, repository_id: str):
        super().__init__(f"Repository {repository_id} is already being indexed")
        self.repository_id = repository_id


class NotReadyError(RepoChatError):
    def __init__(
        self,
        status: str,
        message: str,
        last_error: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.last_error = last_error


class IndexingInProgressError(NotReadyError):
    def __init__(self, message: str, estimated_wait_seconds: int):
        super().__init__("indexing", message)
        self.estimated_wait_seconds = estimated_wait_seconds


class UpstreamError(RepoChatError):
    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause)
        self.status_code = status_code


class VcsError(UpstreamError):
    pass


class QueryRejectedError(UpstreamError):
    """A client-side (4xx) rejection reported by the question-answering backend."""

    def __init__(
        self,
        message: str,
        status_code: int,
        response_data: dict[str, Any] | None = None,
    ):
        super().__init__(message, status_code)
        self.response_data = response_data or {}


class IndexingError(RepoChatError):
    def __init__(
        self,
        message: str,
        stage: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause)
        self.stage = stage


class InternalError(RepoChatError):
    pass
