"""Quote template and template mapping routes.

Routes:
- GET    /quote-templates                      - List templates for the org
- POST   /quote-templates                      - Create a template
- GET    /quote-templates/{id}/mappings        - List a template's mappings
- POST   /quote-templates/{id}/mappings        - Add a mapping to a template
- PUT    /quote-template-mappings/{id}         - Update a mapping
- DELETE /quote-template-mappings/{id}         - Delete a mapping
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from roofcalc.db.connection import get_session
from roofcalc.quoting.templates import TemplateService
from roofcalc.web.dependencies import get_org_id
from roofcalc.web.models import MappingRequest, TemplateRequest

router = APIRouter(tags=["templates"])


def _dump(model) -> dict:
    return model.model_dump(mode="json", by_alias=True)


@router.get("/quote-templates")
async def list_templates(
    org_id: str = Depends(get_org_id),
    active_only: bool = Query(default=False, alias="activeOnly"),
):
    async with get_session() as session:
        templates = await TemplateService(session).list_templates(org_id, active_only)
    return [_dump(t) for t in templates]


@router.post("/quote-templates", status_code=201)
async def create_template(body: TemplateRequest, org_id: str = Depends(get_org_id)):
    async with get_session() as session:
        template = await TemplateService(session).create_template(
            org_id, **body.model_dump(exclude_none=True)
        )
    return _dump(template)


@router.get("/quote-templates/{template_id}/mappings")
async def list_mappings(template_id: UUID, org_id: str = Depends(get_org_id)):
    async with get_session() as session:
        mappings = await TemplateService(session).list_mappings(org_id, template_id)
    return [_dump(m) for m in mappings]


@router.post("/quote-templates/{template_id}/mappings", status_code=201)
async def create_mapping(
    template_id: UUID,
    body: MappingRequest,
    org_id: str = Depends(get_org_id),
):
    async with get_session() as session:
        mapping = await TemplateService(session).create_mapping(
            org_id, template_id, **body.model_dump(exclude_none=True)
        )
    return _dump(mapping)


@router.put("/quote-template-mappings/{mapping_id}")
async def update_mapping(
    mapping_id: UUID,
    body: MappingRequest,
    org_id: str = Depends(get_org_id),
):
    async with get_session() as session:
        mapping = await TemplateService(session).update_mapping(
            org_id, mapping_id, **body.model_dump(exclude_unset=True)
        )
    return _dump(mapping)


@router.delete("/quote-template-mappings/{mapping_id}")
async def delete_mapping(mapping_id: UUID, org_id: str = Depends(get_org_id)):
    async with get_session() as session:
        await TemplateService(session).delete_mapping(org_id, mapping_id)
    return {"success": True}
