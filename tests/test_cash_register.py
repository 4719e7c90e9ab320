"""Tests for the daily cash register ledger."""
import logging
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import func, select

import config
from goat.errors import AlreadyClosed, AlreadyOpen, NotFound
from goat.models import CashMovement, TrainingPayment
from goat.models.base import utcnow
from goat.models.enums import CashMovementReferenceType, CashMovementType, PaymentMethod, PaymentStatus
from goat.services import cash_register, payments
from goat.services.cash_register import business_today


async def _movement_count(session) -> int:
    return await session.scalar(select(func.count()).select_from(CashMovement))


@pytest.mark.asyncio
async def test_open_payment_summary_close(session, organization):
    """Opening 10000, one cash payment of 5000: net flow 5000, closing balance 15000."""
    register = await cash_register.open_register(session, organization.id, None, 10000)
    assert register.date == business_today()

    await payments.create_payment(
        session, organization.id, amount=5000, paid_amount=5000, payment_method=PaymentMethod.cash
    )

    summary = await cash_register.get_daily_summary(session, organization.id)
    assert summary["net_cash_flow"] == 5000
    assert summary["movements"]["income"] == {"total": 5000, "count": 1}
    assert summary["movements"]["expense"] == {"total": 0, "count": 0}
    assert summary["payments_received"] == {"total": 5000, "count": 1}
    assert summary["expected_closing_balance"] == 15000

    closed = await cash_register.close_register(session, organization.id, register.id, None)
    assert closed.closing_balance == 15000
    assert closed.status == "closed"


@pytest.mark.asyncio
async def test_close_subtracts_expenses(session, organization):
    register = await cash_register.open_register(session, organization.id, None, 2000)
    await cash_register.add_manual_movement(session, organization.id, None, CashMovementType.income, 700, "Tip jar")
    await payments.create_expense(
        session, organization.id, amount=500, description="Chalk", payment_method=PaymentMethod.cash
    )
    closed = await cash_register.close_register(session, organization.id, register.id, None, notes="All good")
    assert closed.closing_balance == 2000 + 700 - 500
    assert closed.notes == "All good"


@pytest.mark.asyncio
async def test_second_close_fails(session, organization):
    register = await cash_register.open_register(session, organization.id, None, 0)
    await cash_register.close_register(session, organization.id, register.id, None)
    with pytest.raises(NotFound):
        await cash_register.close_register(session, organization.id, register.id, None)


@pytest.mark.asyncio
async def test_only_one_open_register_per_organization(session, organization):
    yesterday = business_today() - timedelta(days=1)
    await cash_register.open_register(session, organization.id, None, 0, day=yesterday)
    with pytest.raises(AlreadyOpen):
        await cash_register.open_register(session, organization.id, None, 0)


@pytest.mark.asyncio
async def test_reopen_closed_day_fails(session, organization):
    register = await cash_register.open_register(session, organization.id, None, 0)
    await cash_register.close_register(session, organization.id, register.id, None)
    with pytest.raises(AlreadyClosed):
        await cash_register.open_register(session, organization.id, None, 0)


@pytest.mark.asyncio
async def test_open_normalizes_datetime_to_day(session, organization):
    from datetime import time

    day = business_today()
    register = await cash_register.open_register(
        session, organization.id, None, 0, day=datetime.combine(day, time(15, 30))
    )
    assert register.date == day


@pytest.mark.asyncio
async def test_record_movement_is_idempotent(session, organization):
    await cash_register.open_register(session, organization.id, None, 0)
    kwargs = dict(
        organization_id=organization.id,
        payment_method="cash",
        amount=1200,
        description="Monthly fee",
        reference_type=CashMovementReferenceType.payment,
        reference_id=42,
    )
    first = await cash_register.record_movement_if_cash(session, **kwargs)
    second = await cash_register.record_movement_if_cash(session, **kwargs)
    assert first is not None
    assert second.id == first.id
    assert await _movement_count(session) == 1


@pytest.mark.asyncio
async def test_non_cash_method_is_noop(session, organization):
    await cash_register.open_register(session, organization.id, None, 0)
    movement = await cash_register.record_movement_if_cash(
        session,
        organization_id=organization.id,
        payment_method="bank_transfer",
        amount=1200,
        description="Monthly fee",
        reference_type=CashMovementReferenceType.payment,
        reference_id=1,
    )
    assert movement is None
    assert await _movement_count(session) == 0


@pytest.mark.asyncio
async def test_cash_payment_without_open_register_logs_warning(session, organization, caplog):
    caplog.set_level(logging.WARNING, logger="goat.cash_register")
    payment = await payments.create_payment(
        session, organization.id, amount=3000, paid_amount=3000, payment_method=PaymentMethod.cash
    )
    assert payment.id is not None
    assert payment.status == "paid"
    assert await _movement_count(session) == 0
    assert any(
        r.levelno == logging.WARNING and "No open cash register" in r.getMessage() for r in caplog.records
    )


@pytest.mark.asyncio
async def test_manual_movement_requires_open_register(session, organization):
    with pytest.raises(NotFound):
        await cash_register.add_manual_movement(session, organization.id, None, CashMovementType.income, 100, "x")
    register = await cash_register.open_register(session, organization.id, None, 0)
    await cash_register.close_register(session, organization.id, register.id, None)
    with pytest.raises(AlreadyClosed):
        await cash_register.add_manual_movement(session, organization.id, None, CashMovementType.income, 100, "x")


@pytest.mark.asyncio
async def test_closed_register_receives_no_payment_movements(session, organization):
    register = await cash_register.open_register(session, organization.id, None, 0)
    await cash_register.close_register(session, organization.id, register.id, None)
    await payments.create_payment(
        session, organization.id, amount=100, paid_amount=100, payment_method=PaymentMethod.cash
    )
    assert await _movement_count(session) == 0


@pytest.mark.asyncio
async def test_notes_editable_after_close(session, organization):
    register = await cash_register.open_register(session, organization.id, None, 0)
    await cash_register.close_register(session, organization.id, register.id, None)
    updated = await cash_register.update_notes(session, organization.id, register.id, "Counted twice")
    assert updated.notes == "Counted twice"
    assert updated.status == "closed"


@pytest.mark.asyncio
async def test_cross_tenant_register_not_found(session, organization, other_organization):
    register = await cash_register.open_register(session, organization.id, None, 0)
    with pytest.raises(NotFound):
        await cash_register.get_register(session, other_organization.id, register.id)
    with pytest.raises(NotFound):
        await cash_register.close_register(session, other_organization.id, register.id, None)
    # each organization has its own register for the day
    other = await cash_register.open_register(session, other_organization.id, None, 0)
    assert other.id != register.id


@pytest.mark.asyncio
async def test_history_and_movements(session, organization):
    today = business_today()
    old = await cash_register.open_register(session, organization.id, None, 100, day=today - timedelta(days=2))
    await cash_register.close_register(session, organization.id, old.id, None)
    current = await cash_register.open_register(session, organization.id, None, 200)
    await cash_register.add_manual_movement(session, organization.id, None, CashMovementType.income, 50, "Snacks")
    await cash_register.add_manual_movement(session, organization.id, None, CashMovementType.expense, 20, "Tape")

    registers, total = await cash_register.get_history(session, organization.id)
    assert total == 2
    assert [r.id for r in registers] == [current.id, old.id]
    closed_only, _ = await cash_register.get_history(session, organization.id, status="closed")
    assert [r.id for r in closed_only] == [old.id]

    movements, total = await cash_register.get_movements(session, organization.id, current.id)
    assert total == 2
    expenses, total = await cash_register.get_movements(
        session, organization.id, current.id, types=[CashMovementType.expense]
    )
    assert total == 1
    assert expenses[0].description == "Tape"


@pytest.mark.asyncio
async def test_summary_without_register(session, organization):
    summary = await cash_register.get_daily_summary(session, organization.id)
    assert summary["cash_register"] is None
    assert summary["net_cash_flow"] == 0
    assert summary["expected_closing_balance"] is None


@pytest.mark.asyncio
async def test_insert_movement_once_ignores_conflicting_reference(session, organization):
    register = await cash_register.open_register(session, organization.id, None, 0)
    values = {
        "cash_register_id": register.id,
        "organization_id": organization.id,
        "type": CashMovementType.income.value,
        "amount": 900,
        "description": "Monthly fee",
        "reference_type": CashMovementReferenceType.payment.value,
        "reference_id": 7,
        "recorded_by": None,
        "created_at": utcnow(),
    }
    first = await cash_register._insert_movement_once(session, values)
    second = await cash_register._insert_movement_once(session, {**values, "amount": 1})
    assert second.id == first.id
    assert second.amount == 900
    assert await _movement_count(session) == 1


@pytest.mark.asyncio
async def test_summary_counts_payments_by_business_day(session, organization, monkeypatch):
    monkeypatch.setattr(config, "BUSINESS_TIMEZONE", "America/Argentina/Buenos_Aires")
    # 01:00 UTC on the 20th is 22:00 local on the 19th
    session.add(
        TrainingPayment(
            organization_id=organization.id,
            amount=4000,
            paid_amount=4000,
            status=PaymentStatus.paid.value,
            payment_method=PaymentMethod.card.value,
            payment_date=datetime(2026, 10, 20, 1, 0),
        )
    )
    await session.flush()

    summary = await cash_register.get_daily_summary(session, organization.id, date(2026, 10, 19))
    assert summary["payments_received"] == {"total": 4000, "count": 1}
    summary = await cash_register.get_daily_summary(session, organization.id, date(2026, 10, 20))
    assert summary["payments_received"] == {"total": 0, "count": 0}
