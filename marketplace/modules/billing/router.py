"""Payments API router."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from marketplace.core.config import get_settings
from marketplace.modules.billing.schemas import CommissionQuoteRead, PaymentMarkPaid, PaymentRead
from marketplace.modules.billing.service import BillingService, get_billing_service
from marketplace.modules.identity.session import Actor, get_current_actor

settings = get_settings()
router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("/commission/quote", response_model=CommissionQuoteRead)
async def quote_commission(
    price: Decimal = Query(ge=0),
    provider_id: UUID | None = Query(default=None),
    service: BillingService = Depends(get_billing_service),
) -> CommissionQuoteRead:
    """Platform commission and provider payout for a listed price."""
    breakdown = await service.quote(price, provider_id)
    return CommissionQuoteRead(
        price=breakdown.price,
        commission_rate=breakdown.rate,
        commission=breakdown.commission,
        payout=breakdown.payout,
        currency=settings.currency,
    )


@router.get("/booking/{booking_id}", response_model=PaymentRead)
async def get_booking_payment(
    booking_id: UUID,
    service: BillingService = Depends(get_billing_service),
    actor: Actor = Depends(get_current_actor),
) -> PaymentRead:
    payment = await service.get_payment_for_booking(booking_id, actor)
    return PaymentRead.model_validate(payment)


@router.post("/{payment_id}/paid", response_model=PaymentRead)
async def mark_payment_paid(
    payment_id: UUID,
    payload: PaymentMarkPaid,
    service: BillingService = Depends(get_billing_service),
    actor: Actor = Depends(get_current_actor),
) -> PaymentRead:
    """Record captured customer money; it is held until payout."""
    payment = await service.mark_paid(payment_id, payload, actor)
    return PaymentRead.model_validate(payment)


@router.post("/{payment_id}/failed", response_model=PaymentRead)
async def mark_payment_failed(
    payment_id: UUID,
    service: BillingService = Depends(get_billing_service),
    actor: Actor = Depends(get_current_actor),
) -> PaymentRead:
    payment = await service.mark_failed(payment_id, actor)
    return PaymentRead.model_validate(payment)


@router.post("/{payment_id}/release", response_model=PaymentRead)
async def release_payout(
    payment_id: UUID,
    service: BillingService = Depends(get_billing_service),
    actor: Actor = Depends(get_current_actor),
) -> PaymentRead:
    """Release the provider payout (admin)."""
    payment = await service.release_payout(payment_id, actor)
    return PaymentRead.model_validate(payment)


@router.post("/{payment_id}/refund", response_model=PaymentRead)
async def refund_payment(
    payment_id: UUID,
    service: BillingService = Depends(get_billing_service),
    actor: Actor = Depends(get_current_actor),
) -> PaymentRead:
    """Refund held money to the customer (admin)."""
    payment = await service.refund(payment_id, actor)
    return PaymentRead.model_validate(payment)
