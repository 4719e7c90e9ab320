"""Daily cash register: open, movements, close, summaries.

Amounts are integer minor units. A register's closing balance is never kept
incrementally; close_register recomputes it from the movement set.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy import case, func, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

import config
from goat.errors import AlreadyClosed, AlreadyOpen, NotFound
from goat.models import CashMovement, CashRegister, TrainingPayment
from goat.models.base import utcnow
from goat.models.enums import (
    CashMovementReferenceType,
    CashMovementType,
    CashRegisterStatus,
    PaymentMethod,
    PaymentStatus,
)

logger = logging.getLogger("goat.cash_register")

_DIALECT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


def business_today() -> date:
    """Calendar day in BUSINESS_TIMEZONE."""
    return datetime.now(ZoneInfo(config.BUSINESS_TIMEZONE)).date()


def _utc_day_bounds(day: date) -> tuple[datetime, datetime]:
    """Naive UTC [start, end) of a BUSINESS_TIMEZONE calendar day."""
    tz = ZoneInfo(config.BUSINESS_TIMEZONE)
    start = datetime.combine(day, time.min, tz).astimezone(timezone.utc).replace(tzinfo=None)
    end = datetime.combine(day + timedelta(days=1), time.min, tz).astimezone(timezone.utc).replace(tzinfo=None)
    return start, end


def _day(value: Optional[date | datetime]) -> date:
    """Normalize to a calendar day (start-of-day semantics)."""
    if value is None:
        return business_today()
    if isinstance(value, datetime):
        return value.date()
    return value


def _signed_amount():
    return case(
        (CashMovement.type == CashMovementType.expense.value, -CashMovement.amount),
        else_=CashMovement.amount,
    )


async def get_register(session: AsyncSession, organization_id: int, register_id: int) -> CashRegister:
    register = await session.get(CashRegister, register_id)
    if not register or register.organization_id != organization_id:
        raise NotFound("Cash register not found")
    return register


async def get_register_for_date(
    session: AsyncSession, organization_id: int, day: Optional[date] = None
) -> Optional[CashRegister]:
    result = await session.execute(
        select(CashRegister).where(
            CashRegister.organization_id == organization_id,
            CashRegister.date == _day(day),
        )
    )
    return result.scalar_one_or_none()


async def get_current(session: AsyncSession, organization_id: int) -> Optional[CashRegister]:
    """Today's register (open or closed), or None."""
    return await get_register_for_date(session, organization_id)


async def open_register(
    session: AsyncSession,
    organization_id: int,
    opened_by: Optional[int],
    opening_balance: int = 0,
    *,
    day: Optional[date | datetime] = None,
    notes: Optional[str] = None,
) -> CashRegister:
    """Open the register for a day (default today).

    Only one register may be open per organization at any time, whatever its date.
    """
    day = _day(day)
    result = await session.execute(
        select(CashRegister.id, CashRegister.date).where(
            CashRegister.organization_id == organization_id,
            CashRegister.status == CashRegisterStatus.open.value,
        )
    )
    open_row = result.first()
    if open_row:
        raise AlreadyOpen(f"A cash register is already open (date {open_row.date.isoformat()})")
    if await get_register_for_date(session, organization_id, day):
        raise AlreadyClosed(f"Cash register for {day.isoformat()} already exists and is closed")

    register = CashRegister(
        organization_id=organization_id,
        date=day,
        status=CashRegisterStatus.open.value,
        opening_balance=opening_balance,
        opened_by=opened_by,
        notes=notes,
    )
    session.add(register)
    try:
        await session.flush()
    except IntegrityError as e:
        raise AlreadyOpen(f"Cash register for {day.isoformat()} already exists") from e
    logger.info(
        "Opened cash register %s for org %s on %s (opening balance %d)",
        register.id, organization_id, day.isoformat(), opening_balance,
    )
    return register


async def _find_movement(
    session: AsyncSession, reference_type: str, reference_id: int
) -> Optional[CashMovement]:
    result = await session.execute(
        select(CashMovement).where(
            CashMovement.reference_type == reference_type,
            CashMovement.reference_id == reference_id,
        )
    )
    return result.scalar_one_or_none()


async def _insert_movement_once(session: AsyncSession, values: dict) -> CashMovement:
    """INSERT ... ON CONFLICT DO NOTHING on (reference_type, reference_id), then load the row."""
    dialect = session.get_bind().dialect.name
    dialect_insert = _DIALECT_INSERTS.get(dialect)
    if dialect_insert is not None:
        stmt = (
            dialect_insert(CashMovement)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["reference_type", "reference_id"])
        )
        await session.execute(stmt)
    else:
        try:
            async with session.begin_nested():
                session.add(CashMovement(**values))
        except IntegrityError:
            logger.debug("Movement for %s %s already recorded", values["reference_type"], values["reference_id"])
    return await _find_movement(session, values["reference_type"], values["reference_id"])


async def record_movement_if_cash(
    session: AsyncSession,
    *,
    organization_id: int,
    payment_method: Optional[str],
    amount: int,
    description: str,
    reference_type: CashMovementReferenceType,
    reference_id: int,
    recorded_by: Optional[int] = None,
    movement_type: CashMovementType = CashMovementType.income,
) -> Optional[CashMovement]:
    """Record a cash movement for a payment or expense.

    No-op for non-cash methods. If the organization has no open register today the
    movement is skipped with a warning; the caller's payment still goes through.
    Calling it twice for the same (reference_type, reference_id) yields one row.
    """
    if payment_method != PaymentMethod.cash.value:
        return None
    reference_type = CashMovementReferenceType(reference_type).value

    result = await session.execute(
        select(CashRegister).where(
            CashRegister.organization_id == organization_id,
            CashRegister.date == business_today(),
            CashRegister.status == CashRegisterStatus.open.value,
        )
    )
    register = result.scalar_one_or_none()
    if register is None:
        logger.warning(
            "No open cash register for org %s; cash %s %s (%d) not recorded",
            organization_id, reference_type, reference_id, amount,
        )
        return None

    existing = await _find_movement(session, reference_type, reference_id)
    if existing:
        return existing

    movement = await _insert_movement_once(
        session,
        {
            "cash_register_id": register.id,
            "organization_id": organization_id,
            "type": CashMovementType(movement_type).value,
            "amount": amount,
            "description": description,
            "reference_type": reference_type,
            "reference_id": reference_id,
            "recorded_by": recorded_by,
            "created_at": utcnow(),
        },
    )
    logger.info(
        "Cash %s of %d recorded on register %s for %s %s",
        movement.type, movement.amount, register.id, reference_type, reference_id,
    )
    return movement


async def add_manual_movement(
    session: AsyncSession,
    organization_id: int,
    recorded_by: Optional[int],
    movement_type: CashMovementType,
    amount: int,
    description: str,
) -> CashMovement:
    """Manual income/expense on today's register, which must exist and be open."""
    register = await get_current(session, organization_id)
    if register is None:
        raise NotFound("No cash register open for today")
    if register.status != CashRegisterStatus.open.value:
        raise AlreadyClosed("Cash register is closed")
    movement = CashMovement(
        cash_register_id=register.id,
        organization_id=organization_id,
        type=CashMovementType(movement_type).value,
        amount=amount,
        description=description,
        reference_type=CashMovementReferenceType.manual.value,
        recorded_by=recorded_by,
    )
    session.add(movement)
    await session.flush()
    return movement


async def register_totals(session: AsyncSession, register_id: int) -> dict:
    """{type: {"total", "count"}} for income and expense movements of a register."""
    result = await session.execute(
        select(CashMovement.type, func.sum(CashMovement.amount), func.count())
        .where(CashMovement.cash_register_id == register_id)
        .group_by(CashMovement.type)
    )
    totals = {t.value: {"total": 0, "count": 0} for t in CashMovementType}
    for movement_type, total, count in result.all():
        totals[movement_type] = {"total": int(total or 0), "count": count}
    return totals


async def close_register(
    session: AsyncSession,
    organization_id: int,
    register_id: int,
    closed_by: Optional[int],
    notes: Optional[str] = None,
) -> CashRegister:
    """Close an open register: closing = opening + income - expense, recomputed now.

    Closing is one-way; a closed or foreign register raises NotFound.
    """
    result = await session.execute(
        select(CashRegister)
        .where(
            CashRegister.id == register_id,
            CashRegister.organization_id == organization_id,
            CashRegister.status == CashRegisterStatus.open.value,
        )
        .with_for_update()
    )
    register = result.scalar_one_or_none()
    if not register:
        raise NotFound("Cash register not found or already closed")

    net = await session.scalar(
        select(func.coalesce(func.sum(_signed_amount()), 0)).where(CashMovement.cash_register_id == register.id)
    )
    register.closing_balance = register.opening_balance + int(net or 0)
    register.status = CashRegisterStatus.closed.value
    register.closed_by = closed_by
    register.closed_at = utcnow()
    if notes is not None:
        register.notes = notes
    await session.flush()
    logger.info(
        "Closed cash register %s for org %s (opening %d, closing %d)",
        register.id, organization_id, register.opening_balance, register.closing_balance,
    )
    return register


async def update_notes(
    session: AsyncSession, organization_id: int, register_id: int, notes: Optional[str]
) -> CashRegister:
    register = await get_register(session, organization_id, register_id)
    register.notes = notes
    await session.flush()
    return register


async def get_daily_summary(
    session: AsyncSession, organization_id: int, day: Optional[date | datetime] = None
) -> dict:
    """Aggregate a day's movements and paid training payments.

    net_cash_flow = income - expense. expected_closing_balance previews what
    close_register would compute (None when there is no register that day).
    """
    day = _day(day)
    register = await get_register_for_date(session, organization_id, day)
    if register:
        movements = await register_totals(session, register.id)
    else:
        movements = {t.value: {"total": 0, "count": 0} for t in CashMovementType}

    day_start, day_end = _utc_day_bounds(day)
    result = await session.execute(
        select(func.coalesce(func.sum(TrainingPayment.paid_amount), 0), func.count()).where(
            TrainingPayment.organization_id == organization_id,
            TrainingPayment.status == PaymentStatus.paid.value,
            TrainingPayment.payment_date >= day_start,
            TrainingPayment.payment_date < day_end,
        )
    )
    paid_total, paid_count = result.one()

    net = movements[CashMovementType.income.value]["total"] - movements[CashMovementType.expense.value]["total"]
    return {
        "date": day,
        "cash_register": register,
        "movements": movements,
        "payments_received": {"total": int(paid_total or 0), "count": paid_count},
        "net_cash_flow": net,
        "expected_closing_balance": register.opening_balance + net if register else None,
    }


async def get_history(
    session: AsyncSession,
    organization_id: int,
    *,
    status: Optional[CashRegisterStatus] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = 30,
    offset: int = 0,
) -> tuple[list[CashRegister], int]:
    conditions = [CashRegister.organization_id == organization_id]
    if status:
        conditions.append(CashRegister.status == CashRegisterStatus(status).value)
    if date_from:
        conditions.append(CashRegister.date >= date_from)
    if date_to:
        conditions.append(CashRegister.date <= date_to)
    total = await session.scalar(select(func.count()).select_from(CashRegister).where(*conditions))
    result = await session.execute(
        select(CashRegister).where(*conditions).order_by(CashRegister.date.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), total or 0


async def get_movements(
    session: AsyncSession,
    organization_id: int,
    register_id: int,
    *,
    types: Optional[Sequence[CashMovementType]] = None,
    reference_types: Optional[Sequence[CashMovementReferenceType]] = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[CashMovement], int]:
    await get_register(session, organization_id, register_id)
    conditions = [CashMovement.cash_register_id == register_id]
    if types:
        conditions.append(CashMovement.type.in_([CashMovementType(t).value for t in types]))
    if reference_types:
        conditions.append(
            CashMovement.reference_type.in_([CashMovementReferenceType(r).value for r in reference_types])
        )
    total = await session.scalar(select(func.count()).select_from(CashMovement).where(*conditions))
    result = await session.execute(
        select(CashMovement)
        .where(*conditions)
        .order_by(CashMovement.created_at.desc(), CashMovement.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0
