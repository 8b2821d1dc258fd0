from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

ERROR_STATUS_CODES = {
    "BAD_REQUEST": status.HTTP_400_BAD_REQUEST,
    "UNAUTHORIZED": status.HTTP_401_UNAUTHORIZED,
    "FORBIDDEN": status.HTTP_403_FORBIDDEN,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "CONFLICT": status.HTTP_409_CONFLICT,
    "PRECONDITION_FAILED": status.HTTP_412_PRECONDITION_FAILED,
    "TOO_MANY_REQUESTS": status.HTTP_429_TOO_MANY_REQUESTS,
    "INTERNAL_SERVER_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "SERVICE_UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
}


class ApiError(HTTPException):
    """HTTPException carrying a typed error code rendered next to the detail."""

    def __init__(self, code: str, detail: str, headers: dict[str, str] | None = None):
        if code not in ERROR_STATUS_CODES:
            raise ValueError(f"Unknown API error code: {code}")
        super().__init__(status_code=ERROR_STATUS_CODES[code], detail=detail, headers=headers)
        self.code = code


def bad_request(detail: str) -> ApiError:
    return ApiError("BAD_REQUEST", detail)


def unauthorized(detail: str = "Not authenticated") -> ApiError:
    return ApiError("UNAUTHORIZED", detail, headers={"WWW-Authenticate": "Bearer"})


def forbidden(detail: str) -> ApiError:
    return ApiError("FORBIDDEN", detail)


def not_found(detail: str) -> ApiError:
    return ApiError("NOT_FOUND", detail)


def conflict(detail: str) -> ApiError:
    return ApiError("CONFLICT", detail)


def internal_error(detail: str = "Internal server error") -> ApiError:
    return ApiError("INTERNAL_SERVER_ERROR", detail)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=exc.headers,
    )
