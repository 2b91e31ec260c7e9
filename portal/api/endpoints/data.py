# portal/api/endpoints/data.py
"""
Generic CRUD over the feature collections (CRM leads, invoices, visitors, ...).
Every write goes through the mutation pipeline; responses carry the fresh
full collection.
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, status

from portal.api.deps import get_active_console, get_pipeline
from portal.core.permissions import PermissionAction
from portal.schemas.audit import AuditLogRead
from portal.schemas.mutation import MutationResultRead
from portal.schemas.notification import NotificationRead
from portal.services.commands import build_command
from portal.services.pipeline import MutationPipeline, MutationResult
from portal.services.sessions import ConsoleSession

router = APIRouter(prefix="/api/data", tags=["Data"])


def _read(result: MutationResult) -> MutationResultRead:
    return MutationResultRead(
        status=result.status.value,
        collection=result.collection,
        items=result.items,
        audit_entry=AuditLogRead.model_validate(result.audit_entry) if result.audit_entry else None,
        notification=NotificationRead.model_validate(result.notification) if result.notification else None,
    )


@router.get("/{collection}", response_model=MutationResultRead)
async def load_collection(
    collection: str,
    console: ConsoleSession = Depends(get_active_console),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    return _read(await pipeline.load(console, collection, raise_on_denied=True))


@router.post("/{collection}", response_model=MutationResultRead, status_code=status.HTTP_201_CREATED)
async def create_item(
    collection: str,
    payload: Dict[str, Any] = Body(...),
    console: ConsoleSession = Depends(get_active_console),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    command = build_command(collection, PermissionAction.create, payload, raise_on_denied=True)
    return _read(await pipeline.execute(console, command))


@router.put("/{collection}/{item_id}", response_model=MutationResultRead)
async def update_item(
    collection: str,
    item_id: str,
    payload: Dict[str, Any] = Body(...),
    console: ConsoleSession = Depends(get_active_console),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    command = build_command(collection, PermissionAction.update, payload, entity_id=item_id, raise_on_denied=True)
    return _read(await pipeline.execute(console, command))


@router.delete("/{collection}/{item_id}", response_model=MutationResultRead)
async def delete_item(
    collection: str,
    item_id: str,
    console: ConsoleSession = Depends(get_active_console),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    command = build_command(collection, PermissionAction.delete, entity_id=item_id, raise_on_denied=True)
    return _read(await pipeline.execute(console, command))
