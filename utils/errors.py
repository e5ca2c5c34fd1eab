from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from logger.logger import logger


class ChatError(Exception):
    """Base class for errors raised by the chat core"""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class Unauthenticated(ChatError):
    """No caller identity was supplied"""
    status_code = status.HTTP_401_UNAUTHORIZED


class InvalidArgument(ChatError):
    """Empty message without media, or a conversation with oneself"""
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(ChatError):
    status_code = status.HTTP_404_NOT_FOUND


class PermissionDenied(ChatError):
    """The store refused the operation for this caller"""
    status_code = status.HTTP_403_FORBIDDEN


class Transient(ChatError):
    """A query or listener failed in a way that may succeed later"""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def require_identity(user_id) -> str:
    """Caller identity supplied by the identity provider, or Unauthenticated"""
    if not user_id:
        raise Unauthenticated("User must be authenticated")
    return user_id
