"""Providers, service catalogue and reviews API routers."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from marketplace.modules.identity.session import Actor, get_current_actor, get_optional_actor
from marketplace.modules.providers.schemas import (
    ProviderApply,
    ProviderCommissionUpdate,
    ProviderFeaturedUpdate,
    ProviderRead,
    ProviderVerificationUpdate,
    ReviewCreate,
    ReviewRead,
    ServiceListingCreate,
    ServiceListingRead,
)
from marketplace.modules.providers.service import ProvidersService, get_providers_service
from marketplace.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/providers", tags=["providers"])
reviews_router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.post("", response_model=ProviderRead, status_code=status.HTTP_201_CREATED)
async def apply_as_provider(
    payload: ProviderApply,
    service: ProvidersService = Depends(get_providers_service),
    actor: Actor = Depends(get_current_actor),
) -> ProviderRead:
    """Submit a provider application for verification."""
    provider = await service.apply(payload, actor)
    return ProviderRead.model_validate(provider)


@router.get("", response_model=Page[ProviderRead])
async def list_providers(
    city: str | None = Query(default=None, max_length=128),
    pagination=Depends(get_pagination_params),
    service: ProvidersService = Depends(get_providers_service),
    actor: Actor | None = Depends(get_optional_actor),
) -> Page[ProviderRead]:
    """Browse providers, featured first."""
    items, total = await service.list_providers(city, pagination.limit, pagination.offset, actor)
    serialized = [ProviderRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/{provider_id}", response_model=ProviderRead)
async def get_provider(
    provider_id: UUID,
    service: ProvidersService = Depends(get_providers_service),
) -> ProviderRead:
    provider = await service.get_provider(provider_id)
    return ProviderRead.model_validate(provider)


@router.post("/{provider_id}/verification", response_model=ProviderRead)
async def set_provider_verification(
    provider_id: UUID,
    payload: ProviderVerificationUpdate,
    service: ProvidersService = Depends(get_providers_service),
    actor: Actor = Depends(get_current_actor),
) -> ProviderRead:
    """Approve or reject a provider (admin)."""
    provider = await service.set_verification(provider_id, payload.status, actor)
    return ProviderRead.model_validate(provider)


@router.post("/{provider_id}/featured", response_model=ProviderRead)
async def set_provider_featured(
    provider_id: UUID,
    payload: ProviderFeaturedUpdate,
    service: ProvidersService = Depends(get_providers_service),
    actor: Actor = Depends(get_current_actor),
) -> ProviderRead:
    provider = await service.set_featured(provider_id, payload.is_featured, actor)
    return ProviderRead.model_validate(provider)


@router.post("/{provider_id}/commission-rate", response_model=ProviderRead)
async def set_provider_commission_rate(
    provider_id: UUID,
    payload: ProviderCommissionUpdate,
    service: ProvidersService = Depends(get_providers_service),
    actor: Actor = Depends(get_current_actor),
) -> ProviderRead:
    """Override the platform commission for one provider (admin)."""
    provider = await service.set_commission_rate(provider_id, payload.commission_rate, actor)
    return ProviderRead.model_validate(provider)


@router.post(
    "/{provider_id}/services",
    response_model=ServiceListingRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_service_listing(
    provider_id: UUID,
    payload: ServiceListingCreate,
    service: ProvidersService = Depends(get_providers_service),
    actor: Actor = Depends(get_current_actor),
) -> ServiceListingRead:
    listing = await service.create_service_listing(provider_id, payload, actor)
    return ServiceListingRead.model_validate(listing)


@router.get("/{provider_id}/services", response_model=list[ServiceListingRead])
async def list_service_listings(
    provider_id: UUID,
    service: ProvidersService = Depends(get_providers_service),
) -> list[ServiceListingRead]:
    """Active services offered by a provider."""
    listings = await service.list_service_listings(provider_id)
    return [ServiceListingRead.model_validate(item) for item in listings]


@reviews_router.post("", response_model=ReviewRead, status_code=status.HTTP_201_CREATED)
async def submit_review(
    payload: ReviewCreate,
    service: ProvidersService = Depends(get_providers_service),
    actor: Actor = Depends(get_current_actor),
) -> ReviewRead:
    """Review a completed booking."""
    review = await service.submit_review(payload, actor)
    return ReviewRead.model_validate(review)
