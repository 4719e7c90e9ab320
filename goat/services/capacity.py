"""Capacity tracking and registration against capacity holders.

Counts are always re-queried; nothing is cached. Registration locks the holder
row (SELECT ... FOR UPDATE where the database supports it) and re-verifies the
count after the insert is flushed, so two requests racing for the last slot
cannot both succeed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from goat.errors import CapacityExceeded, DuplicateEntry, NotFound
from goat.models import EventRegistration, SportsEvent, WaitlistEntry
from goat.models.enums import EventRegistrationStatus, OrganizationFeature, WaitlistPriority
from goat.services import waitlist
from goat.services.features import FeatureState, get_feature_state
from goat.services.lookups import get_athlete, get_holder, reference_label
from goat.services.references import Reference, member_model, new_membership

logger = logging.getLogger("goat.capacity")


@dataclass(frozen=True)
class CapacityHolder:
    """Snapshot of a holder's capacity. max_capacity None means unbounded."""

    max_capacity: Optional[int]
    current_registrations: int
    enable_waitlist: bool = True


def has_capacity(holder: CapacityHolder) -> bool:
    if holder.max_capacity is None:
        return True
    return holder.current_registrations < holder.max_capacity


def spots_available(holder: CapacityHolder) -> Optional[int]:
    if holder.max_capacity is None:
        return None
    return max(0, holder.max_capacity - holder.current_registrations)


@dataclass
class RegistrationOutcome:
    """Result of register_athlete: exactly one of registration / waitlist_entry is set."""

    status: str  # registered | waitlisted
    registration: object = None
    waitlist_entry: Optional[WaitlistEntry] = None


async def count_registrations(session: AsyncSession, reference: Reference) -> int:
    member_cls, holder_fk = member_model(reference)
    count = await session.scalar(select(func.count()).select_from(member_cls).where(holder_fk == reference.id))
    return count or 0


async def get_capacity(
    session: AsyncSession, organization_id: int, reference: Reference, *, for_update: bool = False
) -> CapacityHolder:
    holder = await get_holder(session, organization_id, reference, for_update=for_update)
    return CapacityHolder(
        max_capacity=holder.max_capacity,
        current_registrations=await count_registrations(session, reference),
        enable_waitlist=holder.enable_waitlist,
    )


async def _is_registered(session: AsyncSession, reference: Reference, athlete_id: int) -> bool:
    member_cls, holder_fk = member_model(reference)
    result = await session.execute(
        select(member_cls.id).where(holder_fk == reference.id, member_cls.athlete_id == athlete_id)
    )
    return result.first() is not None


async def register_athlete(
    session: AsyncSession,
    organization_id: int,
    athlete_id: int,
    reference: Reference,
    *,
    created_by: Optional[int] = None,
    priority: WaitlistPriority = WaitlistPriority.medium,
    reason: Optional[str] = None,
) -> RegistrationOutcome:
    """Register an athlete, or waitlist them when the holder is full.

    Raises CapacityExceeded when full and waitlisting is off for the holder or the
    organization. A rejected insert is rolled back to a savepoint; the caller still
    owns the outer transaction.
    """
    await get_athlete(session, organization_id, athlete_id)
    capacity = await get_capacity(session, organization_id, reference, for_update=True)
    label = reference_label(reference)
    if await _is_registered(session, reference, athlete_id):
        raise DuplicateEntry(f"Athlete is already registered in this {label.lower()}")

    if not has_capacity(capacity):
        waitlist_state = await get_feature_state(session, organization_id, OrganizationFeature.waitlist)
        if capacity.enable_waitlist and waitlist_state is FeatureState.enabled:
            entry = await waitlist.enqueue(
                session,
                organization_id,
                athlete_id,
                reference,
                priority,
                reason,
                created_by=created_by,
            )
            return RegistrationOutcome(status="waitlisted", waitlist_entry=entry)
        raise CapacityExceeded(f"{label} is at capacity and waitlist is disabled")

    registration = new_membership(reference, athlete_id)
    # Savepoint: a rejected insert leaves no row behind in the caller's session
    try:
        async with session.begin_nested():
            session.add(registration)
            await session.flush()

            # Re-verify after the insert; a concurrent registration may have taken the last slot
            if capacity.max_capacity is not None:
                current = await count_registrations(session, reference)
                if current > capacity.max_capacity:
                    logger.warning(
                        "Capacity race on %s %s: %d registrations for %d slots, rejecting athlete %s",
                        reference.reference_type.value, reference.id, current, capacity.max_capacity, athlete_id,
                    )
                    raise CapacityExceeded(f"{label} is at capacity")
    except IntegrityError as e:
        raise DuplicateEntry(f"Athlete is already registered in this {label.lower()}") from e
    return RegistrationOutcome(status="registered", registration=registration)


async def unregister_athlete(
    session: AsyncSession, organization_id: int, athlete_id: int, reference: Reference
) -> int:
    """Remove a registration. Returns the number of athletes still waiting for the holder.

    Freed slots are not filled automatically; promotion stays a manual action.
    """
    await get_holder(session, organization_id, reference)
    member_cls, holder_fk = member_model(reference)
    result = await session.execute(
        select(member_cls).where(holder_fk == reference.id, member_cls.athlete_id == athlete_id)
    )
    registration = result.scalar_one_or_none()
    if not registration:
        raise NotFound("Registration not found")
    await session.delete(registration)
    await session.flush()
    return await waitlist.count_waiting(session, organization_id, reference)


# --- Events ---


async def get_event(
    session: AsyncSession, organization_id: int, event_id: int, *, for_update: bool = False
) -> SportsEvent:
    event = await session.get(SportsEvent, event_id, with_for_update=True if for_update else None)
    if not event or event.organization_id != organization_id:
        raise NotFound("Event not found")
    return event


async def get_event_capacity(
    session: AsyncSession, organization_id: int, event_id: int, *, for_update: bool = False
) -> CapacityHolder:
    """Only confirmed registrations occupy a slot."""
    event = await get_event(session, organization_id, event_id, for_update=for_update)
    confirmed = await session.scalar(
        select(func.count())
        .select_from(EventRegistration)
        .where(
            EventRegistration.event_id == event_id,
            EventRegistration.status == EventRegistrationStatus.confirmed.value,
        )
    )
    return CapacityHolder(
        max_capacity=event.max_capacity,
        current_registrations=confirmed or 0,
        enable_waitlist=event.enable_waitlist,
    )


async def register_for_event(
    session: AsyncSession,
    organization_id: int,
    event_id: int,
    *,
    registrant_name: str,
    athlete_id: Optional[int] = None,
) -> EventRegistration:
    """Create an event registration; full events put it on the event waitlist when enabled."""
    if athlete_id is not None:
        await get_athlete(session, organization_id, athlete_id)
    capacity = await get_event_capacity(session, organization_id, event_id, for_update=True)
    last_number = await session.scalar(
        select(func.max(EventRegistration.registration_number)).where(EventRegistration.event_id == event_id)
    )
    registration = EventRegistration(
        event_id=event_id,
        organization_id=organization_id,
        athlete_id=athlete_id,
        registrant_name=registrant_name,
        registration_number=(last_number or 0) + 1,
        status=EventRegistrationStatus.confirmed.value,
    )
    if not has_capacity(capacity):
        if not capacity.enable_waitlist:
            raise CapacityExceeded("Event is at capacity and waitlist is disabled")
        last_position = await session.scalar(
            select(func.max(EventRegistration.waitlist_position)).where(
                EventRegistration.event_id == event_id,
                EventRegistration.status == EventRegistrationStatus.waitlist.value,
            )
        )
        registration.status = EventRegistrationStatus.waitlist.value
        registration.waitlist_position = (last_position or 0) + 1
    session.add(registration)
    await session.flush()
    if registration.status == EventRegistrationStatus.confirmed.value and capacity.max_capacity is not None:
        recount = await get_event_capacity(session, organization_id, event_id)
        if recount.current_registrations > capacity.max_capacity:
            raise CapacityExceeded("Event is at capacity")
    return registration


async def _get_event_registration(
    session: AsyncSession, organization_id: int, registration_id: int
) -> EventRegistration:
    registration = await session.get(EventRegistration, registration_id)
    if not registration or registration.organization_id != organization_id:
        raise NotFound("Registration not found")
    return registration


async def cancel_event_registration(
    session: AsyncSession, organization_id: int, registration_id: int
) -> EventRegistration:
    registration = await _get_event_registration(session, organization_id, registration_id)
    if registration.status == EventRegistrationStatus.cancelled.value:
        raise NotFound("Registration not found or already cancelled")
    registration.status = EventRegistrationStatus.cancelled.value
    registration.waitlist_position = None
    await session.flush()
    return registration


async def promote_event_registration(
    session: AsyncSession, organization_id: int, registration_id: int
) -> EventRegistration:
    """waitlist -> confirmed. Manual action; capacity is not re-checked."""
    registration = await _get_event_registration(session, organization_id, registration_id)
    if registration.status != EventRegistrationStatus.waitlist.value:
        raise NotFound("Registration not found or not on the waitlist")
    registration.status = EventRegistrationStatus.confirmed.value
    registration.waitlist_position = None
    await session.flush()
    logger.info("Promoted event registration %s into event %s", registration.id, registration.event_id)
    return registration
