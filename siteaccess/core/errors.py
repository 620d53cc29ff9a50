"""
Domain errors and their JSON rendering.

Every error is an ``HTTPException`` so host applications can let them
propagate straight out of route handlers; the ``code`` gives callers a
stable value to branch on without parsing messages.
"""

from __future__ import annotations

from fastapi import FastAPI, HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse


class AccessError(HTTPException):
    status_code = 400
    code = "ACCESS_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(status_code=self.status_code, detail=message)
        self.message = message

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "status": self.status_code,
            }
        }


class NotFoundError(AccessError):
    """A user, project or membership is absent where one is required."""

    status_code = 404
    code = "NOT_FOUND"


class InvalidStateError(AccessError):
    """The membership is not in a state that allows the operation."""

    status_code = 409
    code = "INVALID_STATE"


class ConflictError(AccessError):
    status_code = 409
    code = "CONFLICT"


class ForbiddenError(AccessError):
    status_code = 403
    code = "FORBIDDEN"


class InvalidScopeError(AccessError):
    status_code = 422
    code = "INVALID_SCOPE"


async def access_error_handler(request: Request, exc: AccessError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    """Render AccessError subclasses as ``{"error": {...}}`` bodies."""
    app.add_exception_handler(AccessError, access_error_handler)
