"""Waitlist API: queue listing, manual promotion, cancellation and bulk operations."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field

from goat.models.base import async_session_factory
from goat.models.enums import OrganizationFeature, WaitlistPriority, WaitlistReferenceType, WaitlistStatus
from goat.services import waitlist
from web.auth import OrgContext, get_org_context, get_staff_context
from web.api.utils import page, require_feature, to_reference

router = APIRouter(
    prefix="/api/waitlist",
    tags=["waitlist"],
    dependencies=[Depends(require_feature(OrganizationFeature.waitlist))],
)


# --- Pydantic schemas ---


class WaitlistEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    athlete_id: int
    reference_type: str
    reference_id: int
    priority: str
    status: str
    position: int
    reason: Optional[str] = None
    notes: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_by: Optional[int] = None
    promoted_by: Optional[int] = None
    promoted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class WaitlistEntryCreate(BaseModel):
    athlete_id: int
    reference_type: WaitlistReferenceType
    reference_id: int
    priority: WaitlistPriority = WaitlistPriority.medium
    reason: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None
    expires_at: Optional[datetime] = None


class WaitlistEntryUpdate(BaseModel):
    priority: Optional[WaitlistPriority] = None
    reason: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None
    expires_at: Optional[datetime] = None


class BulkIds(BaseModel):
    ids: list[int] = Field(..., min_length=1)


class BulkPriority(BulkIds):
    priority: WaitlistPriority


class PromoteResponse(BaseModel):
    entry: WaitlistEntryResponse
    registration_id: int


# --- Routes ---


@router.get("")
async def list_waitlist(
    reference_type: Optional[WaitlistReferenceType] = None,
    reference_id: Optional[int] = None,
    status_: Optional[list[WaitlistStatus]] = Query(None, alias="status"),
    priority: Optional[list[WaitlistPriority]] = Query(None),
    athlete_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    ctx: OrgContext = Depends(get_org_context),
):
    """List entries, highest priority first, FIFO within a priority. Defaults to waiting entries."""
    reference = to_reference(reference_type, reference_id) if reference_type and reference_id else None
    async with async_session_factory() as session:
        entries, total = await waitlist.list_entries(
            session,
            ctx.organization_id,
            reference=reference,
            reference_type=reference_type.value if reference_type else None,
            statuses=status_ or [WaitlistStatus.waiting],
            priorities=priority,
            athlete_id=athlete_id,
            limit=limit,
            offset=offset,
        )
    return page([WaitlistEntryResponse.model_validate(e) for e in entries], total, limit, offset)


@router.get("/count")
async def count_waitlist(
    reference_type: WaitlistReferenceType,
    reference_id: int,
    ctx: OrgContext = Depends(get_org_context),
):
    """Number of athletes waiting for one group or session."""
    async with async_session_factory() as session:
        count = await waitlist.count_waiting(session, ctx.organization_id, to_reference(reference_type, reference_id))
    return {"count": count}


@router.post("/expire")
async def expire_waitlist(ctx: OrgContext = Depends(get_staff_context)):
    """Expire waiting entries whose expires_at has passed."""
    async with async_session_factory() as session:
        expired = await waitlist.expire_overdue(session, ctx.organization_id)
        await session.commit()
    return {"expired": expired}


@router.post("/bulk-delete")
async def bulk_delete(body: BulkIds, ctx: OrgContext = Depends(get_staff_context)):
    """Cancel several waiting entries at once."""
    async with async_session_factory() as session:
        count = await waitlist.bulk_cancel(session, ctx.organization_id, body.ids)
        await session.commit()
    return {"success": True, "count": count}


@router.post("/bulk-priority")
async def bulk_priority(body: BulkPriority, ctx: OrgContext = Depends(get_staff_context)):
    async with async_session_factory() as session:
        count = await waitlist.bulk_update_priority(session, ctx.organization_id, body.ids, body.priority)
        await session.commit()
    return {"success": True, "count": count}


@router.get("/{entry_id}", response_model=WaitlistEntryResponse)
async def get_waitlist_entry(entry_id: int, ctx: OrgContext = Depends(get_org_context)):
    async with async_session_factory() as session:
        entry = await waitlist.get_entry(session, ctx.organization_id, entry_id)
        return WaitlistEntryResponse.model_validate(entry)


@router.post("", response_model=WaitlistEntryResponse, status_code=status.HTTP_201_CREATED)
async def create_waitlist_entry(body: WaitlistEntryCreate, ctx: OrgContext = Depends(get_staff_context)):
    """Put an athlete on a waitlist directly, without a capacity check."""
    async with async_session_factory() as session:
        entry = await waitlist.enqueue(
            session,
            ctx.organization_id,
            body.athlete_id,
            to_reference(body.reference_type, body.reference_id),
            body.priority,
            body.reason,
            notes=body.notes,
            expires_at=body.expires_at,
            created_by=ctx.user_id,
        )
        await session.commit()
        await session.refresh(entry)
        return WaitlistEntryResponse.model_validate(entry)


@router.patch("/{entry_id}", response_model=WaitlistEntryResponse)
async def update_waitlist_entry(
    entry_id: int, body: WaitlistEntryUpdate, ctx: OrgContext = Depends(get_staff_context)
):
    async with async_session_factory() as session:
        entry = await waitlist.update_entry(
            session, ctx.organization_id, entry_id, body.model_dump(exclude_unset=True)
        )
        await session.commit()
        await session.refresh(entry)
        return WaitlistEntryResponse.model_validate(entry)


@router.delete("/{entry_id}")
async def delete_waitlist_entry(entry_id: int, ctx: OrgContext = Depends(get_staff_context)):
    """Cancel a waiting entry. The row is kept with status cancelled."""
    async with async_session_factory() as session:
        await waitlist.cancel(session, ctx.organization_id, entry_id)
        await session.commit()
    return {"success": True}


@router.post("/{entry_id}/promote", response_model=PromoteResponse)
async def promote_waitlist_entry(entry_id: int, ctx: OrgContext = Depends(get_staff_context)):
    """Move a waiting athlete into the group or session. Capacity is not re-checked."""
    async with async_session_factory() as session:
        registration = await waitlist.promote(session, ctx.organization_id, entry_id, promoted_by=ctx.user_id)
        await session.commit()
        entry = await waitlist.get_entry(session, ctx.organization_id, entry_id)
        return PromoteResponse(entry=WaitlistEntryResponse.model_validate(entry), registration_id=registration.id)
