"""
Shared request helpers for the routers.
"""

from typing import Any, AsyncIterator, Dict, List

from fastapi import HTTPException
from pydantic import ValidationError as SchemaError

from core.api_client import ApiResult, SheetApiClient
from core.schemas import parse_list


async def get_api_client() -> AsyncIterator[SheetApiClient]:
    """One remote API client per request."""
    client = SheetApiClient.from_env()
    try:
        yield client
    finally:
        await client.aclose()


def records_from_payload(payload: Dict[str, Any], key: str, model, required: bool = False) -> List:
    """Validate payload[key] as a list of `model`; 400 on missing/garbled input."""
    rows = payload.get(key)
    if rows is None:
        if required:
            raise HTTPException(400, f"No '{key}' provided.")
        return []
    if not isinstance(rows, list):
        raise HTTPException(400, f"'{key}' must be a list.")
    try:
        return parse_list(model, rows)
    except SchemaError as exc:
        raise HTTPException(400, f"Invalid '{key}': {exc.errors()[0].get('msg', 'bad record')}")


def unwrap(result: ApiResult) -> ApiResult:
    """Pass a successful result through; surface the API's error verbatim otherwise."""
    if not result.ok:
        raise HTTPException(502, result.error or "Permintaan ke server data gagal")
    return result
