"""Provider repository layer."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from marketplace.core.enums import VerificationStatusEnum
from marketplace.modules.providers.models import Provider, Review, ServiceListing


class ProvidersRepository:
    """DB operations for providers, their services and reviews."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_provider(
        self,
        user_id: UUID,
        business_name: str,
        city: str,
        suburb: str | None,
        bio: str | None,
        service_radius_km: int | None,
    ) -> Provider:
        provider = Provider(
            user_id=user_id,
            business_name=business_name,
            city=city,
            suburb=suburb,
            bio=bio,
            service_radius_km=service_radius_km,
            verification_status=VerificationStatusEnum.PENDING,
            is_featured=False,
            total_bookings=0,
            total_reviews=0,
            average_rating=Decimal("0"),
        )
        self.session.add(provider)
        await self.session.flush()
        return provider

    async def get_provider_by_id(self, provider_id: UUID) -> Provider | None:
        return await self.session.get(Provider, provider_id)

    async def get_provider_by_user_id(self, user_id: UUID) -> Provider | None:
        return await self.session.scalar(select(Provider).where(Provider.user_id == user_id))

    async def list_providers(
        self,
        city: str | None,
        verified_only: bool,
        limit: int,
        offset: int,
    ) -> tuple[list[Provider], int]:
        base_stmt: Select[tuple[Provider]] = select(Provider)
        if verified_only:
            base_stmt = base_stmt.where(Provider.verification_status == VerificationStatusEnum.VERIFIED)
        if city:
            base_stmt = base_stmt.where(func.lower(Provider.city) == city.strip().lower())

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = (
            base_stmt.order_by(Provider.is_featured.desc(), Provider.average_rating.desc())
            .limit(limit)
            .offset(offset)
        )
        items = (await self.session.scalars(stmt)).all()
        return items, total

    async def create_service_listing(
        self,
        provider_id: UUID,
        name: str,
        description: str | None,
        price: Decimal,
        duration_minutes: int,
        category_id: UUID | None,
    ) -> ServiceListing:
        listing = ServiceListing(
            provider_id=provider_id,
            name=name,
            description=description,
            price=price,
            duration_minutes=duration_minutes,
            category_id=category_id,
            is_active=True,
        )
        self.session.add(listing)
        await self.session.flush()
        return listing

    async def get_service_listing_by_id(self, service_id: UUID) -> ServiceListing | None:
        stmt = (
            select(ServiceListing)
            .options(selectinload(ServiceListing.provider))
            .where(ServiceListing.id == service_id)
        )
        return await self.session.scalar(stmt)

    async def list_service_listings(self, provider_id: UUID, active_only: bool) -> list[ServiceListing]:
        stmt = select(ServiceListing).where(ServiceListing.provider_id == provider_id)
        if active_only:
            stmt = stmt.where(ServiceListing.is_active.is_(True))
        return (await self.session.scalars(stmt.order_by(ServiceListing.price))).all()

    async def create_review(
        self,
        booking_id: UUID,
        customer_id: UUID,
        provider_id: UUID | None,
        rating: int,
        comment: str | None,
    ) -> Review:
        review = Review(
            booking_id=booking_id,
            customer_id=customer_id,
            provider_id=provider_id,
            rating=rating,
            comment=comment,
            is_visible=True,
        )
        self.session.add(review)
        await self.session.flush()
        return review

    async def get_review_by_booking_id(self, booking_id: UUID) -> Review | None:
        return await self.session.scalar(select(Review).where(Review.booking_id == booking_id))

    async def save(self, provider: Provider) -> Provider:
        await self.session.flush()
        return provider
