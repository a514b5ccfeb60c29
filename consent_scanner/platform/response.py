from typing import Any, Dict, Optional

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def envelope(status_code: int, message: str, data: Optional[Any] = None) -> Dict[str, Any]:
    return {
        "status_code": status_code,
        "status": "success" if status_code < 400 else "error",
        "message": message,
        "data": jsonable_encoder(data) if data is not None else {},
    }


def api_response(
    *,
    data: Optional[Any] = None,
    message: str = "Operation successful",
    status_code: int = status.HTTP_200_OK,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """
    Wrap a payload in the envelope shared by every scanner endpoint.

    `headers` are passed through as-is, e.g. `Location` for a queued scan.
    """
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content=envelope(status_code, message, data),
    )
