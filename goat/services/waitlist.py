"""Waitlist service: priority + FIFO queue per capacity holder, manual promotion."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional, Sequence

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from goat.errors import DuplicateEntry, NotFound
from goat.models import WaitlistEntry
from goat.models.base import utcnow
from goat.models.enums import WaitlistPriority, WaitlistStatus
from goat.services.lookups import get_athlete, get_holder, reference_label
from goat.services.references import Reference, make_reference, member_model, new_membership

logger = logging.getLogger("goat.waitlist")

# high -> medium -> low, then position (insertion order) inside each band
PRIORITY_RANK = case(
    {
        WaitlistPriority.high.value: 0,
        WaitlistPriority.medium.value: 1,
        WaitlistPriority.low.value: 2,
    },
    value=WaitlistEntry.priority,
    else_=3,
)
QUEUE_ORDER = (PRIORITY_RANK, WaitlistEntry.position, WaitlistEntry.id)

UPDATABLE_FIELDS = ("priority", "reason", "notes", "expires_at")


def _reference_filter(reference: Reference):
    return (
        WaitlistEntry.reference_type == reference.reference_type.value,
        WaitlistEntry.reference_id == reference.id,
    )


async def enqueue(
    session: AsyncSession,
    organization_id: int,
    athlete_id: int,
    reference: Reference,
    priority: WaitlistPriority = WaitlistPriority.medium,
    reason: Optional[str] = None,
    *,
    notes: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    created_by: Optional[int] = None,
) -> WaitlistEntry:
    """Append an athlete to the holder's waitlist. Position is max(position) + 1 over the holder's waiting entries."""
    await get_athlete(session, organization_id, athlete_id)
    await get_holder(session, organization_id, reference)
    existing = await session.execute(
        select(WaitlistEntry.id).where(
            WaitlistEntry.athlete_id == athlete_id,
            WaitlistEntry.status == WaitlistStatus.waiting.value,
            *_reference_filter(reference),
        )
    )
    if existing.first():
        raise DuplicateEntry(f"Athlete is already on the waitlist for this {reference_label(reference).lower()}")
    last_position = await session.scalar(
        select(func.max(WaitlistEntry.position)).where(
            WaitlistEntry.organization_id == organization_id,
            WaitlistEntry.status == WaitlistStatus.waiting.value,
            *_reference_filter(reference),
        )
    )
    entry = WaitlistEntry(
        organization_id=organization_id,
        athlete_id=athlete_id,
        reference_type=reference.reference_type.value,
        reference_id=reference.id,
        priority=WaitlistPriority(priority).value,
        status=WaitlistStatus.waiting.value,
        position=(last_position or 0) + 1,
        reason=reason,
        notes=notes,
        expires_at=expires_at,
        created_by=created_by,
    )
    session.add(entry)
    try:
        await session.flush()
    except IntegrityError as e:
        # Concurrent enqueue hit the partial unique index
        raise DuplicateEntry(
            f"Athlete is already on the waitlist for this {reference_label(reference).lower()}"
        ) from e
    logger.info(
        "Waitlisted athlete %s for %s %s (priority=%s, position=%s)",
        athlete_id, reference.reference_type.value, reference.id, entry.priority, entry.position,
    )
    return entry


async def list_for_reference(
    session: AsyncSession,
    organization_id: int,
    reference: Reference,
    statuses: Iterable[WaitlistStatus] = (WaitlistStatus.waiting,),
) -> list[WaitlistEntry]:
    """Entries for one holder in queue order."""
    result = await session.execute(
        select(WaitlistEntry)
        .where(
            WaitlistEntry.organization_id == organization_id,
            WaitlistEntry.status.in_([WaitlistStatus(s).value for s in statuses]),
            *_reference_filter(reference),
        )
        .order_by(*QUEUE_ORDER)
    )
    return list(result.scalars().all())


async def list_entries(
    session: AsyncSession,
    organization_id: int,
    *,
    reference: Optional[Reference] = None,
    reference_type: Optional[str] = None,
    statuses: Optional[Sequence[WaitlistStatus]] = None,
    priorities: Optional[Sequence[WaitlistPriority]] = None,
    athlete_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[WaitlistEntry], int]:
    """Organization-wide listing with filters. Returns (page, total)."""
    conditions = [WaitlistEntry.organization_id == organization_id]
    if reference is not None:
        conditions.extend(_reference_filter(reference))
    elif reference_type:
        conditions.append(WaitlistEntry.reference_type == reference_type)
    if statuses:
        conditions.append(WaitlistEntry.status.in_([WaitlistStatus(s).value for s in statuses]))
    if priorities:
        conditions.append(WaitlistEntry.priority.in_([WaitlistPriority(p).value for p in priorities]))
    if athlete_id is not None:
        conditions.append(WaitlistEntry.athlete_id == athlete_id)

    total = await session.scalar(select(func.count()).select_from(WaitlistEntry).where(*conditions))
    result = await session.execute(
        select(WaitlistEntry).where(*conditions).order_by(*QUEUE_ORDER).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), total or 0


async def get_entry(session: AsyncSession, organization_id: int, entry_id: int) -> WaitlistEntry:
    entry = await session.get(WaitlistEntry, entry_id)
    if not entry or entry.organization_id != organization_id:
        raise NotFound("Waitlist entry not found")
    return entry


async def _get_waiting_entry(session: AsyncSession, organization_id: int, entry_id: int) -> WaitlistEntry:
    result = await session.execute(
        select(WaitlistEntry).where(
            WaitlistEntry.id == entry_id,
            WaitlistEntry.organization_id == organization_id,
            WaitlistEntry.status == WaitlistStatus.waiting.value,
        )
    )
    entry = result.scalar_one_or_none()
    if not entry:
        raise NotFound("Waitlist entry not found or already processed")
    return entry


async def update_entry(
    session: AsyncSession, organization_id: int, entry_id: int, changes: dict
) -> WaitlistEntry:
    """Edit priority/reason/notes/expiry of a waiting entry. Unknown keys are ignored."""
    entry = await _get_waiting_entry(session, organization_id, entry_id)
    for key in UPDATABLE_FIELDS:
        if key not in changes:
            continue
        value = changes[key]
        if key == "priority":
            if value is None:
                continue
            value = WaitlistPriority(value).value
        setattr(entry, key, value)
    await session.flush()
    return entry


async def count_waiting(session: AsyncSession, organization_id: int, reference: Reference) -> int:
    count = await session.scalar(
        select(func.count())
        .select_from(WaitlistEntry)
        .where(
            WaitlistEntry.organization_id == organization_id,
            WaitlistEntry.status == WaitlistStatus.waiting.value,
            *_reference_filter(reference),
        )
    )
    return count or 0


async def promote(
    session: AsyncSession, organization_id: int, entry_id: int, *, promoted_by: Optional[int] = None
):
    """Turn a waiting entry into a registration on its holder.

    Capacity is not re-checked: promotion is an explicit staff action taken when a
    slot is known to be free. Returns the membership row (existing one if the athlete
    was already registered).
    """
    entry = await _get_waiting_entry(session, organization_id, entry_id)
    reference = make_reference(entry.reference_type, entry.reference_id)
    await get_holder(session, organization_id, reference)
    member_cls, holder_fk = member_model(reference)
    result = await session.execute(
        select(member_cls).where(holder_fk == reference.id, member_cls.athlete_id == entry.athlete_id)
    )
    registration = result.scalar_one_or_none()
    if registration is None:
        registration = new_membership(reference, entry.athlete_id)
        session.add(registration)
    entry.status = WaitlistStatus.promoted.value
    entry.promoted_at = utcnow()
    entry.promoted_by = promoted_by
    await session.flush()
    logger.info(
        "Promoted waitlist entry %s (athlete %s) into %s %s",
        entry.id, entry.athlete_id, entry.reference_type, entry.reference_id,
    )
    return registration


async def cancel(session: AsyncSession, organization_id: int, entry_id: int) -> WaitlistEntry:
    """waiting -> cancelled. Capacity is untouched."""
    entry = await _get_waiting_entry(session, organization_id, entry_id)
    entry.status = WaitlistStatus.cancelled.value
    await session.flush()
    return entry


async def bulk_update_priority(
    session: AsyncSession, organization_id: int, ids: Sequence[int], priority: WaitlistPriority
) -> int:
    """Set priority on all waiting entries among ids in one statement. Returns affected rows."""
    if not ids:
        return 0
    result = await session.execute(
        update(WaitlistEntry)
        .where(
            WaitlistEntry.id.in_(list(ids)),
            WaitlistEntry.organization_id == organization_id,
            WaitlistEntry.status == WaitlistStatus.waiting.value,
        )
        .values(priority=WaitlistPriority(priority).value)
    )
    logger.info(
        "Bulk priority=%s on %d waitlist entries (org %s)",
        WaitlistPriority(priority).value, result.rowcount, organization_id,
    )
    return result.rowcount


async def bulk_cancel(session: AsyncSession, organization_id: int, ids: Sequence[int]) -> int:
    """Cancel all waiting entries among ids in one statement. Returns affected rows."""
    if not ids:
        return 0
    result = await session.execute(
        update(WaitlistEntry)
        .where(
            WaitlistEntry.id.in_(list(ids)),
            WaitlistEntry.organization_id == organization_id,
            WaitlistEntry.status == WaitlistStatus.waiting.value,
        )
        .values(status=WaitlistStatus.cancelled.value)
    )
    logger.info("Bulk cancelled %d waitlist entries (org %s)", result.rowcount, organization_id)
    return result.rowcount


async def expire_overdue(
    session: AsyncSession, organization_id: int, now: Optional[datetime] = None
) -> int:
    """Mark waiting entries past their expires_at as expired."""
    now = now or utcnow()
    result = await session.execute(
        update(WaitlistEntry)
        .where(
            WaitlistEntry.organization_id == organization_id,
            WaitlistEntry.status == WaitlistStatus.waiting.value,
            WaitlistEntry.expires_at.is_not(None),
            WaitlistEntry.expires_at < now,
        )
        .values(status=WaitlistStatus.expired.value)
    )
    if result.rowcount:
        logger.info("Expired %d waitlist entries (org %s)", result.rowcount, organization_id)
    return result.rowcount
