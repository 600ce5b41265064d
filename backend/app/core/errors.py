"""Error taxonomy shared by the invite lifecycle, the reservation workflow and the routers."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.utils.logger import get_logger


class ConfigurationError(RuntimeError):
    """Raised when a required setting (e.g. the invite token secret) is missing."""


class StorageUnavailable(Exception):
    """Transient storage failure; callers may retry."""


class InviteTokenError(Exception):
    code = "TOKEN_INVALID"
    reason = "invalid"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)


class TokenInvalid(InviteTokenError):
    code = "TOKEN_INVALID"
    reason = "invalid"


class TokenRevoked(InviteTokenError):
    code = "TOKEN_REVOKED"
    reason = "revoked"


class TokenExpired(InviteTokenError):
    code = "TOKEN_EXPIRED"
    reason = "expired"


class TokenExhausted(InviteTokenError):
    code = "TOKEN_USED"
    reason = "used"


TOKEN_ERRORS_BY_REASON = {
    cls.reason: cls for cls in (TokenInvalid, TokenRevoked, TokenExpired, TokenExhausted)
}


class InviteNotFound(LookupError):
    pass


class InviteNotResendable(ValueError):
    pass


class ReservationNotFound(LookupError):
    pass


class RateLimited(Exception):
    code = "RATE_LIMITED"


def register_exception_handlers(app: FastAPI) -> None:
    """JSON handlers for errors that can escape any route."""
    log = get_logger("errors")

    @app.exception_handler(StorageUnavailable)
    async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
        log.error(f"{request.method} {request.url.path} -> 503: {exc}")
        return JSONResponse(
            status_code=503,
            headers={"Retry-After": "5"},
            content={"detail": "Service temporarily unavailable, please retry."},
        )

    @app.exception_handler(InviteTokenError)
    async def invite_token_handler(request: Request, exc: InviteTokenError):
        # Specific reasons stay in the logs; guests get one message
        log.warning(f"{request.method} {request.url.path} -> 410: {exc.code}")
        return JSONResponse(
            status_code=410,
            content={"detail": "Invitation is invalid or expired", "error": TokenInvalid.code},
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        log.critical(f"Configuration error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"detail": "Server misconfigured"})
