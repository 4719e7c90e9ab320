"""Training payments and expenses, with cash-register side effects."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from goat.errors import NotFound
from goat.models import Expense, TrainingPayment, TrainingSession
from goat.models.base import utcnow
from goat.models.enums import CashMovementReferenceType, CashMovementType, PaymentMethod, PaymentStatus
from goat.services.cash_register import record_movement_if_cash
from goat.services.lookups import get_athlete

logger = logging.getLogger("goat.payments")


def derive_status(amount: int, paid_amount: int) -> str:
    if paid_amount >= amount:
        return PaymentStatus.paid.value
    if paid_amount > 0:
        return PaymentStatus.partial.value
    return PaymentStatus.pending.value


async def get_payment(session: AsyncSession, organization_id: int, payment_id: int) -> TrainingPayment:
    payment = await session.get(TrainingPayment, payment_id)
    if not payment or payment.organization_id != organization_id:
        raise NotFound("Payment not found")
    return payment


async def create_payment(
    session: AsyncSession,
    organization_id: int,
    *,
    amount: int,
    paid_amount: int = 0,
    athlete_id: Optional[int] = None,
    session_id: Optional[int] = None,
    payment_method: Optional[PaymentMethod] = None,
    payment_date: Optional[datetime] = None,
    description: Optional[str] = None,
    recorded_by: Optional[int] = None,
) -> TrainingPayment:
    athlete = await get_athlete(session, organization_id, athlete_id) if athlete_id is not None else None
    if session_id is not None:
        training_session = await session.get(TrainingSession, session_id)
        if not training_session or training_session.organization_id != organization_id:
            raise NotFound("Training session not found")

    method = PaymentMethod(payment_method).value if payment_method else None
    payment = TrainingPayment(
        organization_id=organization_id,
        athlete_id=athlete_id,
        session_id=session_id,
        amount=amount,
        paid_amount=paid_amount,
        status=derive_status(amount, paid_amount),
        payment_method=method,
        payment_date=payment_date or (utcnow() if paid_amount > 0 else None),
        description=description,
    )
    session.add(payment)
    await session.flush()

    if paid_amount > 0:
        await record_movement_if_cash(
            session,
            organization_id=organization_id,
            payment_method=method,
            amount=paid_amount,
            description=description or (athlete.name if athlete else "Training payment"),
            reference_type=CashMovementReferenceType.payment,
            reference_id=payment.id,
            recorded_by=recorded_by,
        )
    return payment


async def record_payment(
    session: AsyncSession,
    organization_id: int,
    payment_id: int,
    *,
    paid_amount: int,
    payment_method: PaymentMethod,
    payment_date: Optional[datetime] = None,
    recorded_by: Optional[int] = None,
) -> TrainingPayment:
    """Add a received amount to a payment. Never blocked by cash-register state.

    The cash movement is keyed on the payment, so only the first cash recording of
    a payment reaches the register.
    """
    payment = await get_payment(session, organization_id, payment_id)
    method = PaymentMethod(payment_method).value
    payment.paid_amount += paid_amount
    payment.status = derive_status(payment.amount, payment.paid_amount)
    payment.payment_method = method
    payment.payment_date = payment_date or utcnow()
    await session.flush()
    logger.info(
        "Recorded %d on payment %s (org %s), now %s",
        paid_amount, payment.id, organization_id, payment.status,
    )

    description = payment.description
    if not description and payment.athlete_id is not None:
        athlete = await get_athlete(session, organization_id, payment.athlete_id)
        description = athlete.name
    await record_movement_if_cash(
        session,
        organization_id=organization_id,
        payment_method=method,
        amount=paid_amount,
        description=description or "Training payment",
        reference_type=CashMovementReferenceType.payment,
        reference_id=payment.id,
        recorded_by=recorded_by,
    )
    return payment


async def list_payments(
    session: AsyncSession,
    organization_id: int,
    *,
    status: Optional[PaymentStatus] = None,
    athlete_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[TrainingPayment], int]:
    conditions = [TrainingPayment.organization_id == organization_id]
    if status:
        conditions.append(TrainingPayment.status == PaymentStatus(status).value)
    if athlete_id is not None:
        conditions.append(TrainingPayment.athlete_id == athlete_id)
    total = await session.scalar(select(func.count()).select_from(TrainingPayment).where(*conditions))
    result = await session.execute(
        select(TrainingPayment)
        .where(*conditions)
        .order_by(TrainingPayment.created_at.desc(), TrainingPayment.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0


async def create_expense(
    session: AsyncSession,
    organization_id: int,
    *,
    amount: int,
    description: str,
    category: str = "other",
    payment_method: Optional[PaymentMethod] = None,
    expense_date: Optional[datetime] = None,
    recorded_by: Optional[int] = None,
) -> Expense:
    method = PaymentMethod(payment_method).value if payment_method else None
    expense = Expense(
        organization_id=organization_id,
        amount=amount,
        category=category,
        description=description,
        payment_method=method,
        expense_date=expense_date or utcnow(),
    )
    session.add(expense)
    await session.flush()
    await record_movement_if_cash(
        session,
        organization_id=organization_id,
        payment_method=method,
        amount=amount,
        description=description,
        reference_type=CashMovementReferenceType.expense,
        reference_id=expense.id,
        recorded_by=recorded_by,
        movement_type=CashMovementType.expense,
    )
    return expense


async def list_expenses(
    session: AsyncSession, organization_id: int, *, limit: int = 50, offset: int = 0
) -> tuple[list[Expense], int]:
    conditions = [Expense.organization_id == organization_id]
    total = await session.scalar(select(func.count()).select_from(Expense).where(*conditions))
    result = await session.execute(
        select(Expense)
        .where(*conditions)
        .order_by(Expense.expense_date.desc(), Expense.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0
