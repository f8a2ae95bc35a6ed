"""Custom exception classes for structured error handling."""

from typing import Any


class DeskChatError(Exception):
    """Base exception for all DeskChat errors."""

    def __init__(self, code: str, message: str, status_code: int = 500) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message}}


class SessionNotFoundError(DeskChatError):
    def __init__(self, message: str = "Session not found") -> None:
        super().__init__(code="SESSION_NOT_FOUND", message=message, status_code=404)


class SessionBusyError(DeskChatError):
    def __init__(self, message: str = "Another message for this session is still being processed") -> None:
        super().__init__(code="SESSION_BUSY", message=message, status_code=409)


class DepartmentNotFoundError(DeskChatError):
    def __init__(self, message: str = "Department not found") -> None:
        super().__init__(code="DEPARTMENT_NOT_FOUND", message=message, status_code=404)


class DepartmentConflictError(DeskChatError):
    def __init__(self, message: str = "A department with this name already exists") -> None:
        super().__init__(code="DEPARTMENT_CONFLICT", message=message, status_code=409)


class InvalidCredentialsError(DeskChatError):
    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(code="INVALID_CREDENTIALS", message=message, status_code=401)


class InvalidTokenError(DeskChatError):
    def __init__(self, message: str = "Invalid or missing bearer token") -> None:
        super().__init__(code="INVALID_TOKEN", message=message, status_code=401)


class EmbeddingUnavailableError(DeskChatError):
    def __init__(
        self,
        message: str = "Embedding capability is not configured (Gemini API key missing)",
    ) -> None:
        super().__init__(code="EMBEDDING_UNAVAILABLE", message=message, status_code=503)


class IngestionError(DeskChatError):
    def __init__(self, message: str = "Document ingestion failed") -> None:
        super().__init__(code="INGESTION_FAILED", message=message, status_code=500)


class InvalidFileTypeError(DeskChatError):
    def __init__(self, message: str = "Unsupported file type. Use PDF or TXT.") -> None:
        super().__init__(code="INVALID_FILE_TYPE", message=message, status_code=400)


class EmptyDocumentError(DeskChatError):
    def __init__(self, message: str = "File is empty or could not be parsed.") -> None:
        super().__init__(code="EMPTY_DOCUMENT", message=message, status_code=400)


class WhatsAppError(DeskChatError):
    def __init__(
        self,
        message: str = "WhatsApp delivery failed",
        details: dict[str, Any] | None = None,
    ) -> None:
        self.details = details or {}
        super().__init__(code="WHATSAPP_ERROR", message=message, status_code=502)


class DatabaseConnectionError(DeskChatError):
    def __init__(self, message: str = "Database connection failed") -> None:
        super().__init__(code="DATABASE_CONNECTION_ERROR", message=message, status_code=503)


class RedisConnectionError(DeskChatError):
    def __init__(self, message: str = "Redis connection failed") -> None:
        super().__init__(code="REDIS_CONNECTION_ERROR", message=message, status_code=503)
