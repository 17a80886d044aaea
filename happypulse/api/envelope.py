# happypulse/api/envelope.py
"""Success envelope shared by every route: {success: true, data | message}."""
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder


def ok(data: Any = None, message: Optional[str] = None, **extra) -> dict:
    body = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = jsonable_encoder(data)
    body.update(jsonable_encoder(extra))
    return body
