"""Provider business logic layer."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.database import get_db_session
from marketplace.core.enums import BookingStatusEnum, VerificationStatusEnum
from marketplace.modules.booking.access import is_booking_customer
from marketplace.modules.booking.repository import BookingRepository
from marketplace.modules.identity.session import Actor
from marketplace.modules.providers.models import Provider, Review, ServiceListing
from marketplace.modules.providers.repository import ProvidersRepository
from marketplace.modules.providers.schemas import ProviderApply, ReviewCreate, ServiceListingCreate
from marketplace.shared.exceptions import (
    BusinessRuleException,
    ConflictException,
    InvalidInputException,
    NotFoundException,
    UnauthorizedException,
)

logger = logging.getLogger(__name__)

RATING_QUANTUM = Decimal("0.01")


def rolling_average(average: Decimal, count: int, rating: int) -> Decimal:
    """Average after adding one more rating to ``count`` existing ones."""
    total = Decimal(average) * count + rating
    return (total / (count + 1)).quantize(RATING_QUANTUM, rounding=ROUND_HALF_UP)


class ProvidersService:
    """Provider onboarding, moderation, catalogue and reviews."""

    def __init__(
        self,
        repository: ProvidersRepository,
        booking_repository: BookingRepository,
    ) -> None:
        self.repository = repository
        self.booking_repository = booking_repository

    async def _get_provider(self, provider_id: UUID) -> Provider:
        provider = await self.repository.get_provider_by_id(provider_id)
        if provider is None:
            raise NotFoundException("Provider not found")
        return provider

    async def apply(self, payload: ProviderApply, actor: Actor) -> Provider:
        """Create a provider profile awaiting admin verification."""
        existing = await self.repository.get_provider_by_user_id(actor.id)
        if existing is not None:
            raise ConflictException("Provider profile already exists for this user")
        provider = await self.repository.create_provider(
            user_id=actor.id,
            business_name=payload.business_name,
            city=payload.city,
            suburb=payload.suburb,
            bio=payload.bio,
            service_radius_km=payload.service_radius_km,
        )
        logger.info("Provider application %s submitted by %s", provider.id, actor.id)
        return provider

    async def get_provider(self, provider_id: UUID) -> Provider:
        return await self._get_provider(provider_id)

    async def list_providers(
        self,
        city: str | None,
        limit: int,
        offset: int,
        actor: Actor | None = None,
    ) -> tuple[list[Provider], int]:
        """Verified providers; admins also see pending and rejected ones."""
        verified_only = actor is None or not actor.is_admin
        return await self.repository.list_providers(city, verified_only, limit, offset)

    async def set_verification(
        self,
        provider_id: UUID,
        status: VerificationStatusEnum,
        actor: Actor,
    ) -> Provider:
        if not actor.is_admin:
            raise UnauthorizedException("Only admin can verify providers")
        provider = await self._get_provider(provider_id)
        previous_status = provider.verification_status
        provider.verification_status = status
        if status != VerificationStatusEnum.VERIFIED:
            provider.is_featured = False
        await self.repository.save(provider)
        logger.info("Provider %s verification %s -> %s", provider.id, previous_status, status)
        return provider

    async def set_featured(self, provider_id: UUID, is_featured: bool, actor: Actor) -> Provider:
        if not actor.is_admin:
            raise UnauthorizedException("Only admin can feature providers")
        provider = await self._get_provider(provider_id)
        if is_featured and provider.verification_status != VerificationStatusEnum.VERIFIED:
            raise BusinessRuleException("Only verified providers can be featured")
        provider.is_featured = is_featured
        return await self.repository.save(provider)

    async def set_commission_rate(
        self,
        provider_id: UUID,
        commission_rate: Decimal | None,
        actor: Actor,
    ) -> Provider:
        if not actor.is_admin:
            raise UnauthorizedException("Only admin can change commission rates")
        if commission_rate is not None and not Decimal(0) <= commission_rate < Decimal(1):
            raise InvalidInputException("commission_rate must be within [0, 1)")
        provider = await self._get_provider(provider_id)
        provider.commission_rate = commission_rate
        return await self.repository.save(provider)

    async def create_service_listing(
        self,
        provider_id: UUID,
        payload: ServiceListingCreate,
        actor: Actor,
    ) -> ServiceListing:
        provider = await self._get_provider(provider_id)
        if not actor.is_admin and provider.user_id != actor.id:
            raise UnauthorizedException("You can only list services for your own business")
        return await self.repository.create_service_listing(
            provider_id=provider.id,
            name=payload.name,
            description=payload.description,
            price=payload.price,
            duration_minutes=payload.duration_minutes,
            category_id=payload.category_id,
        )

    async def list_service_listings(self, provider_id: UUID) -> list[ServiceListing]:
        await self._get_provider(provider_id)
        return await self.repository.list_service_listings(provider_id, active_only=True)

    async def submit_review(self, payload: ReviewCreate, actor: Actor) -> Review:
        """Rate a completed booking and roll the provider's rating forward."""
        booking = await self.booking_repository.get_booking_by_id(payload.booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        if not is_booking_customer(booking, actor):
            raise UnauthorizedException("Only the customer can review this booking")
        if booking.status != BookingStatusEnum.COMPLETED:
            raise BusinessRuleException("Only completed bookings can be reviewed")
        if await self.repository.get_review_by_booking_id(booking.id) is not None:
            raise ConflictException("Booking has already been reviewed")

        review = await self.repository.create_review(
            booking_id=booking.id,
            customer_id=actor.id,
            provider_id=booking.provider_id,
            rating=payload.rating,
            comment=payload.comment,
        )
        if booking.provider_id is not None:
            provider = await self.repository.get_provider_by_id(booking.provider_id)
            if provider is not None:
                provider.average_rating = rolling_average(
                    provider.average_rating,
                    provider.total_reviews,
                    payload.rating,
                )
                provider.total_reviews += 1
                await self.repository.save(provider)
        return review


async def get_providers_service(session: AsyncSession = Depends(get_db_session)) -> ProvidersService:
    """Dependency provider for providers service."""
    return ProvidersService(
        repository=ProvidersRepository(session),
        booking_repository=BookingRepository(session),
    )
