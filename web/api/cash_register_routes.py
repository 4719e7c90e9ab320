"""Cash register API: daily open/close, movements, summary and history."""
from __future__ import annotations

import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field

from goat.models.base import async_session_factory
from goat.models.enums import CashMovementReferenceType, CashMovementType, CashRegisterStatus, OrganizationFeature
from goat.services import cash_register
from web.auth import OrgContext, get_staff_context
from web.api.utils import page, require_feature

router = APIRouter(
    prefix="/api/cash-register",
    tags=["cash-register"],
    dependencies=[Depends(require_feature(OrganizationFeature.cash_register))],
)


# --- Pydantic schemas ---


class CashRegisterResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    date: dt.date
    status: str
    opening_balance: int
    closing_balance: Optional[int] = None
    opened_by: Optional[int] = None
    closed_by: Optional[int] = None
    opened_at: Optional[dt.datetime] = None
    closed_at: Optional[dt.datetime] = None
    notes: Optional[str] = None


class CashMovementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    cash_register_id: int
    type: str
    amount: int
    description: str
    reference_type: str
    reference_id: Optional[int] = None
    recorded_by: Optional[int] = None
    created_at: Optional[dt.datetime] = None


class OpenRegisterRequest(BaseModel):
    opening_balance: int = Field(0, ge=0)
    date: Optional[dt.date] = None
    notes: Optional[str] = Field(None, max_length=1000)


class CloseRegisterRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)


class NotesRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)


class ManualMovementRequest(BaseModel):
    type: CashMovementType
    amount: int = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=255)


class TotalCount(BaseModel):
    total: int
    count: int


class DailySummaryResponse(BaseModel):
    date: dt.date
    cash_register: Optional[CashRegisterResponse] = None
    movements: dict[str, TotalCount]
    payments_received: TotalCount
    net_cash_flow: int
    expected_closing_balance: Optional[int] = None


# --- Routes ---


@router.get("/current", response_model=Optional[CashRegisterResponse])
async def get_current_register(ctx: OrgContext = Depends(get_staff_context)):
    """Today's register, or null when none was opened today."""
    async with async_session_factory() as session:
        register = await cash_register.get_current(session, ctx.organization_id)
        return CashRegisterResponse.model_validate(register) if register else None


@router.get("/summary", response_model=DailySummaryResponse)
async def get_daily_summary(day: Optional[dt.date] = Query(None, alias="date"), ctx: OrgContext = Depends(get_staff_context)):
    async with async_session_factory() as session:
        summary = await cash_register.get_daily_summary(session, ctx.organization_id, day)
    register = summary["cash_register"]
    return DailySummaryResponse(
        date=summary["date"],
        cash_register=CashRegisterResponse.model_validate(register) if register else None,
        movements=summary["movements"],
        payments_received=summary["payments_received"],
        net_cash_flow=summary["net_cash_flow"],
        expected_closing_balance=summary["expected_closing_balance"],
    )


@router.get("/history")
async def get_history(
    status_: Optional[CashRegisterStatus] = Query(None, alias="status"),
    date_from: Optional[dt.date] = None,
    date_to: Optional[dt.date] = None,
    limit: int = Query(30, ge=1, le=100),
    offset: int = Query(0, ge=0),
    ctx: OrgContext = Depends(get_staff_context),
):
    async with async_session_factory() as session:
        registers, total = await cash_register.get_history(
            session,
            ctx.organization_id,
            status=status_,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
            offset=offset,
        )
    return page([CashRegisterResponse.model_validate(r) for r in registers], total, limit, offset)


@router.post("/open", response_model=CashRegisterResponse, status_code=status.HTTP_201_CREATED)
async def open_register(body: OpenRegisterRequest, ctx: OrgContext = Depends(get_staff_context)):
    async with async_session_factory() as session:
        register = await cash_register.open_register(
            session,
            ctx.organization_id,
            ctx.user_id,
            body.opening_balance,
            day=body.date,
            notes=body.notes,
        )
        await session.commit()
        await session.refresh(register)
        return CashRegisterResponse.model_validate(register)


@router.post("/movements", response_model=CashMovementResponse, status_code=status.HTTP_201_CREATED)
async def add_manual_movement(body: ManualMovementRequest, ctx: OrgContext = Depends(get_staff_context)):
    """Manual income or expense on today's open register."""
    async with async_session_factory() as session:
        movement = await cash_register.add_manual_movement(
            session, ctx.organization_id, ctx.user_id, body.type, body.amount, body.description
        )
        await session.commit()
        await session.refresh(movement)
        return CashMovementResponse.model_validate(movement)


@router.get("/{register_id}", response_model=CashRegisterResponse)
async def get_register(register_id: int, ctx: OrgContext = Depends(get_staff_context)):
    async with async_session_factory() as session:
        register = await cash_register.get_register(session, ctx.organization_id, register_id)
        return CashRegisterResponse.model_validate(register)


@router.post("/{register_id}/close", response_model=CashRegisterResponse)
async def close_register(
    register_id: int, body: Optional[CloseRegisterRequest] = None, ctx: OrgContext = Depends(get_staff_context)
):
    """Close an open register. The closing balance is recomputed from its movements."""
    async with async_session_factory() as session:
        register = await cash_register.close_register(
            session, ctx.organization_id, register_id, ctx.user_id, body.notes if body else None
        )
        await session.commit()
        await session.refresh(register)
        return CashRegisterResponse.model_validate(register)


@router.patch("/{register_id}/notes", response_model=CashRegisterResponse)
async def update_notes(register_id: int, body: NotesRequest, ctx: OrgContext = Depends(get_staff_context)):
    async with async_session_factory() as session:
        register = await cash_register.update_notes(session, ctx.organization_id, register_id, body.notes)
        await session.commit()
        await session.refresh(register)
        return CashRegisterResponse.model_validate(register)


@router.get("/{register_id}/movements")
async def get_movements(
    register_id: int,
    type_: Optional[list[CashMovementType]] = Query(None, alias="type"),
    reference_type: Optional[list[CashMovementReferenceType]] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    ctx: OrgContext = Depends(get_staff_context),
):
    async with async_session_factory() as session:
        movements, total = await cash_register.get_movements(
            session,
            ctx.organization_id,
            register_id,
            types=type_,
            reference_types=reference_type,
            limit=limit,
            offset=offset,
        )
    return page([CashMovementResponse.model_validate(m) for m in movements], total, limit, offset)
