"""Training payments and expenses. Cash payments feed today's cash register."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, model_validator

from goat.models.base import async_session_factory
from goat.models.enums import OrganizationFeature, PaymentMethod, PaymentStatus
from goat.services import payments
from web.auth import OrgContext, get_staff_context
from web.api.utils import page, require_feature

payments_router = APIRouter(
    prefix="/api/payments",
    tags=["payments"],
    dependencies=[Depends(require_feature(OrganizationFeature.payments))],
)
expenses_router = APIRouter(
    prefix="/api/expenses",
    tags=["expenses"],
    dependencies=[Depends(require_feature(OrganizationFeature.expenses))],
)


# --- Pydantic schemas ---


class PaymentCreate(BaseModel):
    amount: int = Field(..., gt=0)
    paid_amount: int = Field(0, ge=0)
    athlete_id: Optional[int] = None
    session_id: Optional[int] = None
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None
    description: Optional[str] = Field(None, max_length=255)

    @model_validator(mode="after")
    def method_when_paid(self):
        if self.paid_amount > 0 and self.payment_method is None:
            raise ValueError("payment_method is required when paid_amount > 0")
        return self


class RecordPaymentRequest(BaseModel):
    paid_amount: int = Field(..., gt=0)
    payment_method: PaymentMethod
    payment_date: Optional[datetime] = None


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    athlete_id: Optional[int] = None
    session_id: Optional[int] = None
    amount: int
    paid_amount: int
    status: str
    payment_method: Optional[str] = None
    payment_date: Optional[datetime] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class ExpenseCreate(BaseModel):
    amount: int = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=255)
    category: str = Field("other", max_length=32)
    payment_method: Optional[PaymentMethod] = None
    expense_date: Optional[datetime] = None


class ExpenseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: int
    category: str
    description: str
    payment_method: Optional[str] = None
    expense_date: Optional[datetime] = None


# --- Payments ---


@payments_router.get("")
async def list_payments(
    status_: Optional[PaymentStatus] = Query(None, alias="status"),
    athlete_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    ctx: OrgContext = Depends(get_staff_context),
):
    async with async_session_factory() as session:
        items, total = await payments.list_payments(
            session, ctx.organization_id, status=status_, athlete_id=athlete_id, limit=limit, offset=offset
        )
    return page([PaymentResponse.model_validate(p) for p in items], total, limit, offset)


@payments_router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(body: PaymentCreate, ctx: OrgContext = Depends(get_staff_context)):
    async with async_session_factory() as session:
        payment = await payments.create_payment(
            session, ctx.organization_id, recorded_by=ctx.user_id, **body.model_dump()
        )
        await session.commit()
        await session.refresh(payment)
        return PaymentResponse.model_validate(payment)


@payments_router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(payment_id: int, ctx: OrgContext = Depends(get_staff_context)):
    async with async_session_factory() as session:
        payment = await payments.get_payment(session, ctx.organization_id, payment_id)
        return PaymentResponse.model_validate(payment)


@payments_router.post("/{payment_id}/record", response_model=PaymentResponse)
async def record_payment(payment_id: int, body: RecordPaymentRequest, ctx: OrgContext = Depends(get_staff_context)):
    """Register money received. Succeeds even when no cash register is open."""
    async with async_session_factory() as session:
        payment = await payments.record_payment(
            session,
            ctx.organization_id,
            payment_id,
            paid_amount=body.paid_amount,
            payment_method=body.payment_method,
            payment_date=body.payment_date,
            recorded_by=ctx.user_id,
        )
        await session.commit()
        await session.refresh(payment)
        return PaymentResponse.model_validate(payment)


# --- Expenses ---


@expenses_router.get("")
async def list_expenses(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    ctx: OrgContext = Depends(get_staff_context),
):
    async with async_session_factory() as session:
        items, total = await payments.list_expenses(session, ctx.organization_id, limit=limit, offset=offset)
    return page([ExpenseResponse.model_validate(e) for e in items], total, limit, offset)


@expenses_router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def create_expense(body: ExpenseCreate, ctx: OrgContext = Depends(get_staff_context)):
    async with async_session_factory() as session:
        expense = await payments.create_expense(
            session, ctx.organization_id, recorded_by=ctx.user_id, **body.model_dump()
        )
        await session.commit()
        await session.refresh(expense)
        return ExpenseResponse.model_validate(expense)
