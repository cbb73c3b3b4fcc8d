"""Error envelope returned by the inspector API routes."""
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from flask import Response, jsonify


def error_payload(code: str, message: str, meta: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "success": False,
        "data": None,
        "error": {"code": code, "message": message},
        "meta": meta or {},
    }


def error_response(
    code: str,
    message: str,
    status: int = 400,
    meta: Optional[Dict[str, Any]] = None,
) -> Tuple[Response, int]:
    """JSON error envelope plus its HTTP status, ready to return from a view."""
    return jsonify(error_payload(code, message, meta)), status
