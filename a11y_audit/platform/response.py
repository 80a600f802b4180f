from typing import Any, Dict, Optional

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def api_response(
    *,
    data: Optional[Any] = None,
    message: str = "Operation successful",
    status_code: int = status.HTTP_200_OK,
    error_category: Optional[str] = None,
) -> JSONResponse:
    """
    Envelope shared by every endpoint of the audit API.

    `status` is derived from the code ("success" below 400, "error" otherwise).
    Scan failures also report the failure category so clients can tell a
    blocked site from a timeout without parsing the message.
    """
    status_str = "success" if status_code < 400 else "error"
    content: Dict[str, Any] = {
        "status_code": status_code,
        "status": status_str,
        "message": message,
        "data": jsonable_encoder(data) if data is not None else {},
    }
    if error_category:
        content["error_category"] = error_category

    return JSONResponse(status_code=status_code, content=content)
