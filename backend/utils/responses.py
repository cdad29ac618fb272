from fastapi.responses import JSONResponse

from services.errors import EntitlementError


def error_response(error_code, status=400, message="An error occurred", data=None):
    return JSONResponse(
        status_code=status,
        content={
            "ok": False,
            "data": {} if data is None else data,
            "error": error_code,
            "message": message,
        }
    )


def entitlement_error_response(exc: EntitlementError):
    """Normalized error envelope for a service-layer EntitlementError"""
    return error_response(exc.error_code, status=exc.status_code, message=exc.message)
