"""
API Routes for Mimic Mappings

Provides endpoints for:
- Registering URL patterns and regular expressions
- Listing mappings with metadata
- Reading and replacing mapping content
- Deleting mappings
"""

import json
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from mimic.core.exceptions import InvalidArgument, InvalidPattern, NotFound
from mimic.mappings.service import MappingService
from .dependencies import get_mapping_service

router = APIRouter(prefix="/mimic", tags=["mimic"])


class PatternCreateRequest(BaseModel):
    """Exactly one of pattern or regexPattern"""

    model_config = ConfigDict(populate_by_name=True)

    pattern: Optional[str] = None
    regex_pattern: Optional[str] = Field(None, alias="regexPattern")


def _error(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    content = {"error": error}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


@router.post("/patterns", status_code=201)
async def create_pattern(
    request: Request,
    service: MappingService = Depends(get_mapping_service)
):
    """Register a URL/glob pattern or a regex; an identical source is overwritten in place"""
    # Validated here so malformed bodies answer 400 like every other invalid create
    try:
        req = PatternCreateRequest.model_validate_json(await request.body() or b"{}")
    except ValidationError as e:
        return _error(400, "Invalid request body", str(e))

    try:
        mapping = service.create_or_overwrite(
            pattern=req.pattern or None,
            regex_pattern=req.regex_pattern or None
        )
    except InvalidArgument as e:
        return _error(400, "Either pattern or regexPattern must be provided", str(e))
    except InvalidPattern as e:
        return _error(400, "Failed to create mapping", str(e))

    response = {"id": mapping.id}
    if mapping.pattern is not None:
        response["pattern"] = mapping.pattern
    else:
        response["regexPattern"] = mapping.regex_pattern
    return response


@router.get("/mappings")
async def list_mappings(service: MappingService = Depends(get_mapping_service)):
    """List all mappings (metadata only, content is not loaded)"""
    return service.list_with_metadata()


@router.get("/mappings/{mapping_id}")
async def get_mapping(mapping_id: str, service: MappingService = Depends(get_mapping_service)):
    """Get a mapping with its content as UTF-8 text"""
    mapping = await service.get_mapping(mapping_id, hydrate=True)
    if mapping is None:
        return _error(404, "Mapping not found")

    return {
        "id": mapping.id,
        "pattern": mapping.pattern,
        "regexPattern": mapping.regex_pattern,
        "content": mapping.content.decode("utf-8", errors="replace") if mapping.content else "",
    }


@router.post("/mappings/{mapping_id}")
async def update_mapping_content(
    mapping_id: str,
    request: Request,
    service: MappingService = Depends(get_mapping_service)
):
    """
    Assign content to a mapping

    The body is the raw content (js, json, html, ...). With
    ``Content-Type: application/json`` a ``{"content": "..."}`` wrapper is
    also accepted.
    """
    if mapping_id not in service.store:
        return _error(404, "Mapping not found")

    raw = await request.body()
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("application/json") and raw:
        try:
            payload = json.loads(raw)
        except ValueError:
            payload = None
        if isinstance(payload, dict) and isinstance(payload.get("content"), str):
            raw = payload["content"].encode("utf-8")

    if not raw:
        return _error(400, "Failed to update content", "Content must be provided as text in the request body")

    try:
        raw.decode("utf-8")
    except UnicodeDecodeError:
        return _error(400, "Failed to update content", "Content must be UTF-8 text")

    try:
        mapping = service.set_content(mapping_id, raw)
    except NotFound:
        return _error(404, "Mapping not found")

    return {"success": True, "id": mapping.id, "contentLength": mapping.content_length}


@router.delete("/mappings/{mapping_id}")
async def delete_mapping(mapping_id: str, service: MappingService = Depends(get_mapping_service)):
    """Delete a mapping and its content"""
    return {"success": service.delete_mapping(mapping_id)}
