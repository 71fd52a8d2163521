import json
from typing import Optional, Union
import azure.functions as func

def cors_response(
    body: Union[str, bytes] = b"",
    status: int = 200,
    mime: str = "text/plain"
) -> func.HttpResponse:
    return func.HttpResponse(
        body=body,
        status_code=status,
        mimetype=mime,
        headers={
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET,POST,DELETE,OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type, Authorization",
        },
    )

def json_response(
    message: str,
    status: int = 200,
    data: Optional[dict] = None,
    errors: Optional[dict] = None,
) -> func.HttpResponse:
    """Standard envelope: {"success", "message", "data"[, "errors"]}."""
    payload = {"success": status < 400, "message": message}
    if data is not None:
        payload["data"] = data
    if errors:
        payload["errors"] = errors
    return cors_response(json.dumps(payload), status, "application/json")
