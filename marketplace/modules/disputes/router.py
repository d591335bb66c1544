"""Disputes API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from marketplace.core.enums import DisputeStatusEnum
from marketplace.modules.disputes.schemas import DisputeCreate, DisputeRead, DisputeStatusUpdate
from marketplace.modules.disputes.service import DisputesService, get_disputes_service
from marketplace.modules.identity.session import Actor, get_current_actor
from marketplace.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/disputes", tags=["disputes"])


@router.post("", response_model=DisputeRead, status_code=status.HTTP_201_CREATED)
async def raise_dispute(
    payload: DisputeCreate,
    service: DisputesService = Depends(get_disputes_service),
    actor: Actor = Depends(get_current_actor),
) -> DisputeRead:
    """Raise a dispute; the booking moves to DISPUTED."""
    dispute = await service.raise_dispute(payload, actor)
    return DisputeRead.model_validate(dispute)


@router.get("", response_model=Page[DisputeRead])
async def list_disputes(
    status_filter: DisputeStatusEnum | None = Query(default=None, alias="status"),
    pagination=Depends(get_pagination_params),
    service: DisputesService = Depends(get_disputes_service),
    actor: Actor = Depends(get_current_actor),
) -> Page[DisputeRead]:
    """List disputes (admin)."""
    items, total = await service.list_disputes(actor, status_filter, pagination.limit, pagination.offset)
    serialized = [DisputeRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/{dispute_id}", response_model=DisputeRead)
async def get_dispute(
    dispute_id: UUID,
    service: DisputesService = Depends(get_disputes_service),
    actor: Actor = Depends(get_current_actor),
) -> DisputeRead:
    dispute = await service.get_dispute(dispute_id, actor)
    return DisputeRead.model_validate(dispute)


@router.post("/{dispute_id}/status", response_model=DisputeRead)
async def update_dispute_status(
    dispute_id: UUID,
    payload: DisputeStatusUpdate,
    service: DisputesService = Depends(get_disputes_service),
    actor: Actor = Depends(get_current_actor),
) -> DisputeRead:
    """Move a dispute through moderation (admin)."""
    dispute = await service.update_status(dispute_id, payload, actor)
    return DisputeRead.model_validate(dispute)
