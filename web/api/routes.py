"""API routes for athletes, athlete groups, training sessions and events."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy import func, select

from goat.models import (
    Athlete,
    AthleteGroup,
    AthleteGroupMember,
    EventRegistration,
    SportsEvent,
    TrainingSession,
    TrainingSessionAthlete,
)
from goat.models.base import async_session_factory
from goat.models.enums import OrganizationFeature, WaitlistPriority
from goat.services import capacity, waitlist
from goat.services.lookups import get_athlete, get_holder
from goat.services.references import AthleteGroupRef, Reference, TrainingSessionRef
from web.auth import OrgContext, get_org_context, get_staff_context
from web.api.utils import page, require_feature
from web.api.waitlist_routes import WaitlistEntryResponse

athletes_router = APIRouter(
    prefix="/api/athletes",
    tags=["athletes"],
    dependencies=[Depends(require_feature(OrganizationFeature.athletes))],
)
groups_router = APIRouter(
    prefix="/api/groups",
    tags=["groups"],
    dependencies=[Depends(require_feature(OrganizationFeature.athlete_groups))],
)
sessions_router = APIRouter(
    prefix="/api/sessions",
    tags=["sessions"],
    dependencies=[Depends(require_feature(OrganizationFeature.training_sessions))],
)
events_router = APIRouter(
    prefix="/api/events",
    tags=["events"],
    dependencies=[Depends(require_feature(OrganizationFeature.events))],
)

routers = (athletes_router, groups_router, sessions_router, events_router)


# --- Pydantic schemas ---


class AthleteCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    email: Optional[str] = None


class AthleteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: Optional[str] = None
    created_at: Optional[datetime] = None


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    max_capacity: Optional[int] = Field(None, ge=1)
    enable_waitlist: bool = True


class GroupUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=128)
    max_capacity: Optional[int] = Field(None, ge=1)
    enable_waitlist: Optional[bool] = None
    is_active: Optional[bool] = None


class GroupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    max_capacity: Optional[int] = None
    enable_waitlist: bool
    is_active: bool


class SessionCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=128)
    start_time: datetime
    end_time: datetime
    max_capacity: Optional[int] = Field(None, ge=1)
    enable_waitlist: bool = True
    athlete_group_id: Optional[int] = None

    @model_validator(mode="after")
    def end_after_start(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class SessionUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=128)
    max_capacity: Optional[int] = Field(None, ge=1)
    enable_waitlist: Optional[bool] = None
    status: Optional[str] = None


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    start_time: datetime
    end_time: datetime
    max_capacity: Optional[int] = None
    enable_waitlist: bool
    athlete_group_id: Optional[int] = None
    status: Optional[str] = None


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=128)
    starts_at: Optional[datetime] = None
    max_capacity: Optional[int] = Field(None, ge=1)
    enable_waitlist: bool = True


class EventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    starts_at: Optional[datetime] = None
    max_capacity: Optional[int] = None
    enable_waitlist: bool


class EventRegistrationCreate(BaseModel):
    registrant_name: str = Field(..., min_length=1, max_length=128)
    athlete_id: Optional[int] = None


class EventRegistrationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_id: int
    athlete_id: Optional[int] = None
    registrant_name: str
    registration_number: int
    status: str
    waitlist_position: Optional[int] = None


class RegisterAthlete(BaseModel):
    athlete_id: int
    priority: WaitlistPriority = WaitlistPriority.medium
    reason: Optional[str] = Field(None, max_length=500)


class RegistrationResponse(BaseModel):
    status: str  # registered | waitlisted
    registration_id: Optional[int] = None
    waitlist_entry: Optional[WaitlistEntryResponse] = None


class CapacityResponse(BaseModel):
    max_capacity: Optional[int] = None
    current_registrations: int
    spots_available: Optional[int] = None
    has_capacity: bool
    enable_waitlist: bool
    waiting: Optional[int] = None


def _capacity_response(holder: capacity.CapacityHolder, waiting: Optional[int] = None) -> CapacityResponse:
    return CapacityResponse(
        max_capacity=holder.max_capacity,
        current_registrations=holder.current_registrations,
        spots_available=capacity.spots_available(holder),
        has_capacity=capacity.has_capacity(holder),
        enable_waitlist=holder.enable_waitlist,
        waiting=waiting,
    )


# --- Shared registration handlers for groups and sessions ---


async def _register(ctx: OrgContext, reference: Reference, body: RegisterAthlete) -> RegistrationResponse:
    async with async_session_factory() as session:
        outcome = await capacity.register_athlete(
            session,
            ctx.organization_id,
            body.athlete_id,
            reference,
            created_by=ctx.user_id,
            priority=body.priority,
            reason=body.reason,
        )
        await session.commit()
        if outcome.waitlist_entry is not None:
            await session.refresh(outcome.waitlist_entry)
            return RegistrationResponse(
                status=outcome.status,
                waitlist_entry=WaitlistEntryResponse.model_validate(outcome.waitlist_entry),
            )
        return RegistrationResponse(status=outcome.status, registration_id=outcome.registration.id)


async def _unregister(ctx: OrgContext, reference: Reference, athlete_id: int) -> dict:
    async with async_session_factory() as session:
        waiting = await capacity.unregister_athlete(session, ctx.organization_id, athlete_id, reference)
        await session.commit()
    return {"success": True, "waiting": waiting}


async def _capacity(ctx: OrgContext, reference: Reference) -> CapacityResponse:
    async with async_session_factory() as session:
        holder = await capacity.get_capacity(session, ctx.organization_id, reference)
        waiting = await waitlist.count_waiting(session, ctx.organization_id, reference)
    return _capacity_response(holder, waiting)


# --- Athletes ---


@athletes_router.get("")
async def list_athletes(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    ctx: OrgContext = Depends(get_org_context),
):
    async with async_session_factory() as session:
        condition = Athlete.organization_id == ctx.organization_id
        total = await session.scalar(select(func.count()).select_from(Athlete).where(condition))
        result = await session.execute(
            select(Athlete).where(condition).order_by(Athlete.name).limit(limit).offset(offset)
        )
        athletes = [AthleteResponse.model_validate(a) for a in result.scalars().all()]
    return page(athletes, total or 0, limit, offset)


@athletes_router.post("", response_model=AthleteResponse, status_code=status.HTTP_201_CREATED)
async def create_athlete(body: AthleteCreate, ctx: OrgContext = Depends(get_staff_context)):
    async with async_session_factory() as session:
        athlete = Athlete(organization_id=ctx.organization_id, name=body.name.strip(), email=body.email)
        session.add(athlete)
        await session.commit()
        await session.refresh(athlete)
        return AthleteResponse.model_validate(athlete)


@athletes_router.get("/{athlete_id}", response_model=AthleteResponse)
async def get_athlete_by_id(athlete_id: int, ctx: OrgContext = Depends(get_org_context)):
    async with async_session_factory() as session:
        athlete = await get_athlete(session, ctx.organization_id, athlete_id)
        return AthleteResponse.model_validate(athlete)


# --- Athlete groups ---


@groups_router.get("", response_model=list[GroupResponse])
async def list_groups(ctx: OrgContext = Depends(get_org_context)):
    async with async_session_factory() as session:
        result = await session.execute(
            select(AthleteGroup)
            .where(AthleteGroup.organization_id == ctx.organization_id)
            .order_by(AthleteGroup.name)
        )
        return [GroupResponse.model_validate(g) for g in result.scalars().all()]


@groups_router.post("", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(body: GroupCreate, ctx: OrgContext = Depends(get_staff_context)):
    async with async_session_factory() as session:
        existing = await session.execute(
            select(AthleteGroup.id).where(
                AthleteGroup.organization_id == ctx.organization_id,
                AthleteGroup.name == body.name,
            )
        )
        if existing.first():
            raise HTTPException(409, "A group with this name already exists")
        group = AthleteGroup(organization_id=ctx.organization_id, **body.model_dump())
        session.add(group)
        await session.commit()
        await session.refresh(group)
        return GroupResponse.model_validate(group)


@groups_router.get("/{group_id}", response_model=GroupResponse)
async def get_group(group_id: int, ctx: OrgContext = Depends(get_org_context)):
    async with async_session_factory() as session:
        group = await get_holder(session, ctx.organization_id, AthleteGroupRef(group_id))
        return GroupResponse.model_validate(group)


@groups_router.patch("/{group_id}", response_model=GroupResponse)
async def update_group(group_id: int, body: GroupUpdate, ctx: OrgContext = Depends(get_staff_context)):
    async with async_session_factory() as session:
        group = await get_holder(session, ctx.organization_id, AthleteGroupRef(group_id))
        for key, value in body.model_dump(exclude_unset=True).items():
            if key in ("name", "enable_waitlist", "is_active") and value is None:
                continue
            setattr(group, key, value)
        await session.commit()
        await session.refresh(group)
        return GroupResponse.model_validate(group)


@groups_router.get("/{group_id}/members")
async def list_group_members(group_id: int, ctx: OrgContext = Depends(get_org_context)):
    async with async_session_factory() as session:
        await get_holder(session, ctx.organization_id, AthleteGroupRef(group_id))
        result = await session.execute(
            select(Athlete)
            .join(AthleteGroupMember, AthleteGroupMember.athlete_id == Athlete.id)
            .where(AthleteGroupMember.group_id == group_id)
            .order_by(AthleteGroupMember.created_at, AthleteGroupMember.id)
        )
        return [AthleteResponse.model_validate(a) for a in result.scalars().all()]


@groups_router.post("/{group_id}/members", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
async def add_group_member(group_id: int, body: RegisterAthlete, ctx: OrgContext = Depends(get_staff_context)):
    """Add an athlete to a group, or waitlist them when the group is full."""
    return await _register(ctx, AthleteGroupRef(group_id), body)


@groups_router.delete("/{group_id}/members/{athlete_id}")
async def remove_group_member(group_id: int, athlete_id: int, ctx: OrgContext = Depends(get_staff_context)):
    return await _unregister(ctx, AthleteGroupRef(group_id), athlete_id)


@groups_router.get("/{group_id}/capacity", response_model=CapacityResponse)
async def get_group_capacity(group_id: int, ctx: OrgContext = Depends(get_org_context)):
    return await _capacity(ctx, AthleteGroupRef(group_id))


# --- Training sessions ---


@sessions_router.get("", response_model=list[SessionResponse])
async def list_sessions(
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    ctx: OrgContext = Depends(get_org_context),
):
    conditions = [TrainingSession.organization_id == ctx.organization_id]
    if date_from:
        conditions.append(TrainingSession.start_time >= date_from)
    if date_to:
        conditions.append(TrainingSession.start_time <= date_to)
    async with async_session_factory() as session:
        result = await session.execute(select(TrainingSession).where(*conditions).order_by(TrainingSession.start_time))
        return [SessionResponse.model_validate(s) for s in result.scalars().all()]


@sessions_router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(body: SessionCreate, ctx: OrgContext = Depends(get_staff_context)):
    async with async_session_factory() as session:
        if body.athlete_group_id is not None:
            await get_holder(session, ctx.organization_id, AthleteGroupRef(body.athlete_group_id))
        training_session = TrainingSession(organization_id=ctx.organization_id, **body.model_dump())
        session.add(training_session)
        await session.commit()
        await session.refresh(training_session)
        return SessionResponse.model_validate(training_session)


@sessions_router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: int, ctx: OrgContext = Depends(get_org_context)):
    async with async_session_factory() as session:
        training_session = await get_holder(session, ctx.organization_id, TrainingSessionRef(session_id))
        return SessionResponse.model_validate(training_session)


@sessions_router.patch("/{session_id}", response_model=SessionResponse)
async def update_session(session_id: int, body: SessionUpdate, ctx: OrgContext = Depends(get_staff_context)):
    async with async_session_factory() as session:
        training_session = await get_holder(session, ctx.organization_id, TrainingSessionRef(session_id))
        for key, value in body.model_dump(exclude_unset=True).items():
            if key in ("title", "enable_waitlist", "status") and value is None:
                continue
            setattr(training_session, key, value)
        await session.commit()
        await session.refresh(training_session)
        return SessionResponse.model_validate(training_session)


@sessions_router.get("/{session_id}/athletes")
async def list_session_athletes(session_id: int, ctx: OrgContext = Depends(get_org_context)):
    async with async_session_factory() as session:
        await get_holder(session, ctx.organization_id, TrainingSessionRef(session_id))
        result = await session.execute(
            select(Athlete)
            .join(TrainingSessionAthlete, TrainingSessionAthlete.athlete_id == Athlete.id)
            .where(TrainingSessionAthlete.session_id == session_id)
            .order_by(TrainingSessionAthlete.created_at, TrainingSessionAthlete.id)
        )
        return [AthleteResponse.model_validate(a) for a in result.scalars().all()]


@sessions_router.post(
    "/{session_id}/athletes", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED
)
async def add_session_athlete(session_id: int, body: RegisterAthlete, ctx: OrgContext = Depends(get_staff_context)):
    """Assign an athlete to a session, or waitlist them when the session is full."""
    return await _register(ctx, TrainingSessionRef(session_id), body)


@sessions_router.delete("/{session_id}/athletes/{athlete_id}")
async def remove_session_athlete(session_id: int, athlete_id: int, ctx: OrgContext = Depends(get_staff_context)):
    return await _unregister(ctx, TrainingSessionRef(session_id), athlete_id)


@sessions_router.get("/{session_id}/capacity", response_model=CapacityResponse)
async def get_session_capacity(session_id: int, ctx: OrgContext = Depends(get_org_context)):
    return await _capacity(ctx, TrainingSessionRef(session_id))


# --- Events ---


@events_router.get("", response_model=list[EventResponse])
async def list_events(ctx: OrgContext = Depends(get_org_context)):
    async with async_session_factory() as session:
        result = await session.execute(
            select(SportsEvent)
            .where(SportsEvent.organization_id == ctx.organization_id)
            .order_by(SportsEvent.starts_at.desc(), SportsEvent.id.desc())
        )
        return [EventResponse.model_validate(e) for e in result.scalars().all()]


@events_router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(body: EventCreate, ctx: OrgContext = Depends(get_staff_context)):
    async with async_session_factory() as session:
        event = SportsEvent(organization_id=ctx.organization_id, **body.model_dump())
        session.add(event)
        await session.commit()
        await session.refresh(event)
        return EventResponse.model_validate(event)


@events_router.get("/{event_id}", response_model=EventResponse)
async def get_event(event_id: int, ctx: OrgContext = Depends(get_org_context)):
    async with async_session_factory() as session:
        event = await capacity.get_event(session, ctx.organization_id, event_id)
        return EventResponse.model_validate(event)


@events_router.get("/{event_id}/capacity", response_model=CapacityResponse)
async def get_event_capacity(event_id: int, ctx: OrgContext = Depends(get_org_context)):
    async with async_session_factory() as session:
        holder = await capacity.get_event_capacity(session, ctx.organization_id, event_id)
    return _capacity_response(holder)


@events_router.get("/{event_id}/registrations", response_model=list[EventRegistrationResponse])
async def list_event_registrations(event_id: int, ctx: OrgContext = Depends(get_org_context)):
    """Confirmed registrations by number, then the waitlist in position order, then cancelled."""
    async with async_session_factory() as session:
        await capacity.get_event(session, ctx.organization_id, event_id)
        result = await session.execute(
            select(EventRegistration)
            .where(EventRegistration.event_id == event_id)
            .order_by(EventRegistration.registration_number)
        )
        registrations = result.scalars().all()
    order = {"confirmed": 0, "waitlist": 1, "cancelled": 2}
    registrations = sorted(
        registrations, key=lambda r: (order.get(r.status, 3), r.waitlist_position or 0, r.registration_number)
    )
    return [EventRegistrationResponse.model_validate(r) for r in registrations]


@events_router.post(
    "/{event_id}/registrations", response_model=EventRegistrationResponse, status_code=status.HTTP_201_CREATED
)
async def register_for_event(
    event_id: int, body: EventRegistrationCreate, ctx: OrgContext = Depends(get_staff_context)
):
    async with async_session_factory() as session:
        registration = await capacity.register_for_event(
            session,
            ctx.organization_id,
            event_id,
            registrant_name=body.registrant_name,
            athlete_id=body.athlete_id,
        )
        await session.commit()
        await session.refresh(registration)
        return EventRegistrationResponse.model_validate(registration)


@events_router.post("/registrations/{registration_id}/cancel", response_model=EventRegistrationResponse)
async def cancel_event_registration(registration_id: int, ctx: OrgContext = Depends(get_staff_context)):
    async with async_session_factory() as session:
        registration = await capacity.cancel_event_registration(session, ctx.organization_id, registration_id)
        await session.commit()
        await session.refresh(registration)
        return EventRegistrationResponse.model_validate(registration)


@events_router.post("/registrations/{registration_id}/promote", response_model=EventRegistrationResponse)
async def promote_event_registration(registration_id: int, ctx: OrgContext = Depends(get_staff_context)):
    async with async_session_factory() as session:
        registration = await capacity.promote_event_registration(session, ctx.organization_id, registration_id)
        await session.commit()
        await session.refresh(registration)
        return EventRegistrationResponse.model_validate(registration)
