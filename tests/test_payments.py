"""Tests for training payments and expenses."""
import pytest

from goat.errors import NotFound
from goat.models.enums import PaymentMethod
from goat.services import cash_register, payments
from goat.services.payments import derive_status


def test_derive_status():
    assert derive_status(1000, 0) == "pending"
    assert derive_status(1000, 400) == "partial"
    assert derive_status(1000, 1000) == "paid"
    assert derive_status(1000, 1500) == "paid"


@pytest.mark.asyncio
async def test_record_payment_accumulates(session, organization, make_athlete):
    athlete = await make_athlete("Dana")
    payment = await payments.create_payment(session, organization.id, amount=1000, athlete_id=athlete.id)
    assert payment.status == "pending"
    assert payment.payment_date is None

    await payments.record_payment(
        session, organization.id, payment.id, paid_amount=400, payment_method=PaymentMethod.card
    )
    assert (payment.paid_amount, payment.status) == (400, "partial")
    await payments.record_payment(
        session, organization.id, payment.id, paid_amount=600, payment_method=PaymentMethod.card
    )
    assert (payment.paid_amount, payment.status) == (1000, "paid")
    assert payment.payment_date is not None


@pytest.mark.asyncio
async def test_cash_record_creates_income_movement(session, organization, make_athlete):
    register = await cash_register.open_register(session, organization.id, None, 0)
    athlete = await make_athlete("Eli")
    payment = await payments.create_payment(session, organization.id, amount=800, athlete_id=athlete.id)
    await payments.record_payment(
        session, organization.id, payment.id, paid_amount=800, payment_method=PaymentMethod.cash
    )
    movements, total = await cash_register.get_movements(session, organization.id, register.id)
    assert total == 1
    assert movements[0].type == "income"
    assert movements[0].amount == 800
    assert movements[0].reference_type == "payment"
    assert movements[0].reference_id == payment.id
    assert movements[0].description == "Eli"


@pytest.mark.asyncio
async def test_cash_expense_creates_expense_movement(session, organization):
    register = await cash_register.open_register(session, organization.id, None, 1000)
    expense = await payments.create_expense(
        session, organization.id, amount=300, description="Balls", payment_method=PaymentMethod.cash
    )
    movements, _ = await cash_register.get_movements(session, organization.id, register.id)
    assert [(m.type, m.amount, m.reference_id) for m in movements] == [("expense", 300, expense.id)]


@pytest.mark.asyncio
async def test_payment_for_foreign_athlete_not_found(session, organization, other_organization, make_athlete):
    foreign = await make_athlete("Foreign", organization_id=other_organization.id)
    with pytest.raises(NotFound):
        await payments.create_payment(session, organization.id, amount=100, athlete_id=foreign.id)


@pytest.mark.asyncio
async def test_list_payments_scoped_to_organization(session, organization, other_organization):
    await payments.create_payment(session, organization.id, amount=100)
    await payments.create_payment(session, organization.id, amount=200, paid_amount=200, payment_method="card")
    await payments.create_payment(session, other_organization.id, amount=300)

    items, total = await payments.list_payments(session, organization.id)
    assert total == 2
    paid, total = await payments.list_payments(session, organization.id, status="paid")
    assert total == 1
    assert paid[0].amount == 200
