"""Seed idempotent demo catalogue data for local/non-production environments."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import get_settings
from marketplace.core.database import SessionLocal, close_engine
from marketplace.core.enums import RoleEnum, VerificationStatusEnum
from marketplace.core.security import create_access_token
from marketplace.modules.providers.models import Provider, ServiceCategory, ServiceListing

DEMO_ADMIN_ID = UUID("00000000-0000-4000-8000-000000000001")
DEMO_PROVIDER_USER_ID = UUID("00000000-0000-4000-8000-000000000002")
DEMO_CUSTOMER_ID = UUID("00000000-0000-4000-8000-000000000003")

DEMO_CATEGORY_SLUG = "car-wash"
DEMO_BUSINESS_NAME = "Shine & Go Mobile Wash"
DEMO_CITY = "Johannesburg"
DEMO_SUBURB = "Sandton"

# name, price, duration in minutes
DEMO_SERVICES = (
    ("Basic Wash", Decimal("150.00"), 30),
    ("Full Detail", Decimal("450.00"), 90),
    ("Premium Detail", Decimal("750.00"), 120),
)

DEMO_TOKEN_TTL = timedelta(days=7)


@dataclass(slots=True)
class SeedStats:
    category_created: bool = False
    provider_created: bool = False
    provider_id: str | None = None
    services_created: int = 0
    tokens: dict[str, str] = field(default_factory=dict)


async def _ensure_category(session: AsyncSession) -> tuple[ServiceCategory, bool]:
    category = await session.scalar(
        select(ServiceCategory).where(ServiceCategory.slug == DEMO_CATEGORY_SLUG),
    )
    if category is not None:
        return category, False

    category = ServiceCategory(
        name="Car Wash",
        slug=DEMO_CATEGORY_SLUG,
        description="Mobile car washing and detailing at your door.",
        icon="car",
        display_order=1,
    )
    session.add(category)
    await session.flush()
    return category, True


async def _ensure_provider(session: AsyncSession) -> tuple[Provider, bool]:
    provider = await session.scalar(
        select(Provider).where(Provider.user_id == DEMO_PROVIDER_USER_ID),
    )
    created = False
    if provider is None:
        provider = Provider(user_id=DEMO_PROVIDER_USER_ID, business_name=DEMO_BUSINESS_NAME, city=DEMO_CITY)
        session.add(provider)
        created = True

    provider.business_name = DEMO_BUSINESS_NAME
    provider.city = DEMO_CITY
    provider.suburb = DEMO_SUBURB
    provider.bio = "Waterless mobile car wash covering Sandton and surrounds."
    provider.service_radius_km = 20
    provider.verification_status = VerificationStatusEnum.VERIFIED
    provider.is_featured = True
    await session.flush()
    return provider, created


async def _ensure_services(
    session: AsyncSession,
    *,
    provider: Provider,
    category: ServiceCategory,
) -> int:
    created = 0
    for name, price, duration_minutes in DEMO_SERVICES:
        existing = await session.scalar(
            select(ServiceListing).where(
                ServiceListing.provider_id == provider.id,
                ServiceListing.name == name,
            ),
        )
        if existing is not None:
            existing.price = price
            existing.duration_minutes = duration_minutes
            existing.is_active = True
            continue

        session.add(
            ServiceListing(
                provider_id=provider.id,
                category_id=category.id,
                name=name,
                price=price,
                duration_minutes=duration_minutes,
            ),
        )
        created += 1

    await session.flush()
    return created


def _demo_tokens(provider: Provider) -> dict[str, str]:
    return {
        "admin": create_access_token(DEMO_ADMIN_ID, [RoleEnum.ADMIN], expires_delta=DEMO_TOKEN_TTL),
        "provider": create_access_token(
            DEMO_PROVIDER_USER_ID,
            [RoleEnum.PROVIDER],
            provider_id=provider.id,
            expires_delta=DEMO_TOKEN_TTL,
        ),
        "customer": create_access_token(DEMO_CUSTOMER_ID, [RoleEnum.CUSTOMER], expires_delta=DEMO_TOKEN_TTL),
    }


async def _run_seed(*, allow_production: bool) -> SeedStats:
    settings = get_settings()
    app_env = settings.app_env.strip().lower()
    if app_env in {"production", "prod"} and not allow_production:
        raise RuntimeError(
            "Refusing to seed demo data in production. "
            "Re-run with --allow-production only if you are absolutely sure.",
        )

    stats = SeedStats()

    async with SessionLocal() as session:
        try:
            category, stats.category_created = await _ensure_category(session)
            provider, stats.provider_created = await _ensure_provider(session)
            stats.provider_id = str(provider.id)
            stats.services_created = await _ensure_services(session, provider=provider, category=category)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    stats.tokens = _demo_tokens(provider)
    return stats


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Seed idempotent demo data for LocalServices (car wash category, "
            "verified provider, priced services) and print demo access tokens."
        ),
    )
    parser.add_argument(
        "--allow-production",
        action="store_true",
        help="Allow seeding even when APP_ENV is production/prod.",
    )
    return parser


def _print_summary(stats: SeedStats) -> None:
    print("Demo seed completed.")
    print(f"- Category created: {stats.category_created}")
    print(f"- Provider created: {stats.provider_created}")
    print(f"- Provider id: {stats.provider_id}")
    print(f"- Services created: {stats.services_created}")
    print("")
    print("Demo bearer tokens (non-production only):")
    for role, token in stats.tokens.items():
        print(f"- {role}: {token}")


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()

    try:
        stats = asyncio.run(_run_seed(allow_production=args.allow_production))
    except Exception as exc:
        print(f"Demo seed failed: {exc}")
        return 1
    finally:
        asyncio.run(close_engine())

    _print_summary(stats)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
