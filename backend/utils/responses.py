from fastapi.responses import JSONResponse

from backend.utils.errors import AppError


def error_response(error_code, status=400, message="An error occurred", data=None):
    return JSONResponse(
        status_code=status,
        content={
            "ok": False,
            "data": data if data is not None else {},
            "error": error_code,
            "message": message,
        }
    )


def app_error_response(exc: AppError):
    """Render an AppError with its own status, code and detail."""
    return error_response(
        exc.error_code,
        status=exc.status_code,
        message=exc.message,
        data=exc.detail,
    )
