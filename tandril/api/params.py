"""
Request body helpers shared by the authenticated JSON endpoints.
"""
import json

from fastapi import Request

from tandril.errors import ValidationError


async def read_json_params(request: Request) -> dict:
    """Parse an optional JSON object body. An empty body is an empty dict."""
    body = await request.body()
    if not body:
        return {}
    try:
        params = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise ValidationError("Invalid JSON body")
    if not isinstance(params, dict):
        raise ValidationError("Invalid JSON body")
    return params
