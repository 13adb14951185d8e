"""Minecharts error types.

Error codes are stable strings for programmatic handling. Every error
knows its HTTP status so the API layer can render it without a lookup table.
"""

from __future__ import annotations

from typing import Any


class MinechartsError(Exception):
    """Base error for all Minecharts exceptions."""

    code: str = "internal_error"
    message: str = "An internal error occurred"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.__class__.message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Render as the API error envelope."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "request_id": request_id,
                "details": self.details,
            }
        }


class AuthenticationError(MinechartsError):
    """Missing or invalid credential (401)."""

    code = "unauthorized"
    message = "Authentication required"
    status_code = 401


class TokenExpiredError(AuthenticationError):
    """Bearer token signature is valid but the token has expired."""

    code = "token_expired"
    message = "Token has expired"


class InvalidTokenError(AuthenticationError):
    """Bearer token is malformed or its signature does not verify."""

    code = "invalid_token"
    message = "Invalid token"


class InvalidApiKeyError(AuthenticationError):
    """API key is unknown or expired."""

    code = "invalid_api_key"
    message = "Invalid API key"


class AuthorizationError(MinechartsError):
    """Valid principal without the required permission, or inactive (403)."""

    code = "forbidden"
    message = "Permission denied"
    status_code = 403


class NotFoundError(MinechartsError):
    """Resource not found (404)."""

    code = "not_found"
    message = "Resource not found"
    status_code = 404


class ValidationError(MinechartsError):
    """Request validation error (400)."""

    code = "validation_error"
    message = "Validation error"
    status_code = 400


class ConflictError(MinechartsError):
    """State conflict (409)."""

    code = "conflict"
    message = "Conflict"
    status_code = 409


class AlreadyExistsError(ConflictError):
    """A unique key (username, email, server name, API key) is taken."""

    code = "already_exists"
    message = "Resource already exists"


class ServerNotRunningError(ConflictError):
    """Operation needs a live game-server instance and there is none."""

    code = "server_not_running"
    message = "Server has no running instance"


class DownstreamError(MinechartsError):
    """Credential store or orchestration platform call failed (500)."""

    code = "downstream_error"
    message = "Downstream call failed"
    status_code = 500


class CommandExecutionError(DownstreamError):
    """Remote command failed; carries whatever output was captured."""

    code = "exec_failed"
    message = "Command execution failed"

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        *,
        stdout: str = "",
        stderr: str = "",
        exit_code: int | None = None,
    ) -> None:
        self.stdout = stdout
        self.stderr = stderr
        self.exit_code = exit_code
        merged = {"stdout": stdout, "stderr": stderr, "exit_code": exit_code}
        merged.update(details or {})
        super().__init__(message, merged)


class CommandTimeoutError(CommandExecutionError):
    """Remote command did not finish within its timeout."""

    code = "exec_timeout"
    message = "Command execution timed out"
