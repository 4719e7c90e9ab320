"""Tests for waitlist ordering, promotion and bulk operations."""
from datetime import timedelta

import pytest

from goat.errors import DuplicateEntry, NotFound
from goat.models.base import utcnow
from goat.models.enums import WaitlistPriority, WaitlistStatus
from goat.services import capacity, waitlist
from goat.services.references import AthleteGroupRef, TrainingSessionRef


@pytest.fixture
async def full_group(session, organization, make_athlete, make_group):
    """Group of capacity 10 with 10 registered athletes."""
    group = await make_group(max_capacity=10)
    ref = AthleteGroupRef(group.id)
    for i in range(10):
        athlete = await make_athlete(f"Member {i}")
        await capacity.register_athlete(session, organization.id, athlete.id, ref)
    return group


@pytest.mark.asyncio
async def test_high_priority_listed_first(session, organization, make_athlete, full_group):
    ref = AthleteGroupRef(full_group.id)
    low = await waitlist.enqueue(session, organization.id, (await make_athlete("Low")).id, ref, WaitlistPriority.low)
    medium = await waitlist.enqueue(session, organization.id, (await make_athlete("Med")).id, ref)
    high = await waitlist.enqueue(
        session, organization.id, (await make_athlete("High")).id, ref, WaitlistPriority.high
    )

    entries = await waitlist.list_for_reference(session, organization.id, ref)
    assert [e.id for e in entries] == [high.id, medium.id, low.id]
    # position is append order, independent of priority
    assert [low.position, medium.position, high.position] == [1, 2, 3]


@pytest.mark.asyncio
async def test_fifo_within_priority(session, organization, make_athlete, make_group):
    group = await make_group()
    ref = AthleteGroupRef(group.id)
    first = await waitlist.enqueue(session, organization.id, (await make_athlete("1")).id, ref, WaitlistPriority.high)
    second = await waitlist.enqueue(session, organization.id, (await make_athlete("2")).id, ref, WaitlistPriority.high)
    entries = await waitlist.list_for_reference(session, organization.id, ref)
    assert [e.id for e in entries] == [first.id, second.id]


@pytest.mark.asyncio
async def test_duplicate_waiting_entry_rejected(session, organization, make_athlete, make_group):
    group = await make_group()
    athlete = await make_athlete()
    ref = AthleteGroupRef(group.id)
    await waitlist.enqueue(session, organization.id, athlete.id, ref)
    with pytest.raises(DuplicateEntry):
        await waitlist.enqueue(session, organization.id, athlete.id, ref, WaitlistPriority.high)


@pytest.mark.asyncio
async def test_reenqueue_after_cancel_allowed(session, organization, make_athlete, make_group):
    group = await make_group()
    athlete = await make_athlete()
    ref = AthleteGroupRef(group.id)
    entry = await waitlist.enqueue(session, organization.id, athlete.id, ref)
    await waitlist.cancel(session, organization.id, entry.id)
    again = await waitlist.enqueue(session, organization.id, athlete.id, ref)
    assert again.status == WaitlistStatus.waiting.value
    # positions restart once nobody is waiting
    assert again.position == 1


@pytest.mark.asyncio
async def test_same_athlete_on_different_holders(session, organization, make_athlete, make_group, make_training_session):
    athlete = await make_athlete()
    group = await make_group()
    training_session = await make_training_session()
    await waitlist.enqueue(session, organization.id, athlete.id, AthleteGroupRef(group.id))
    entry = await waitlist.enqueue(session, organization.id, athlete.id, TrainingSessionRef(training_session.id))
    assert entry.reference_type == "training_session"


@pytest.mark.asyncio
async def test_promote_creates_registration_once(session, organization, make_athlete, make_group):
    group = await make_group(max_capacity=1)
    ref = AthleteGroupRef(group.id)
    member = await make_athlete("Member")
    waiting = await make_athlete("Waiting")
    await capacity.register_athlete(session, organization.id, member.id, ref)
    outcome = await capacity.register_athlete(session, organization.id, waiting.id, ref)
    entry = outcome.waitlist_entry

    registration = await waitlist.promote(session, organization.id, entry.id, promoted_by=None)
    assert registration.athlete_id == waiting.id
    assert entry.status == WaitlistStatus.promoted.value
    assert entry.promoted_at is not None

    # promotion does not re-check capacity
    holder = await capacity.get_capacity(session, organization.id, ref)
    assert holder.current_registrations == 2

    with pytest.raises(NotFound):
        await waitlist.promote(session, organization.id, entry.id)
    holder = await capacity.get_capacity(session, organization.id, ref)
    assert holder.current_registrations == 2


@pytest.mark.asyncio
async def test_cancelled_entry_cannot_be_promoted_or_cancelled(session, organization, make_athlete, make_group):
    group = await make_group()
    entry = await waitlist.enqueue(session, organization.id, (await make_athlete()).id, AthleteGroupRef(group.id))
    await waitlist.cancel(session, organization.id, entry.id)
    with pytest.raises(NotFound):
        await waitlist.promote(session, organization.id, entry.id)
    with pytest.raises(NotFound):
        await waitlist.cancel(session, organization.id, entry.id)
    with pytest.raises(NotFound):
        await waitlist.update_entry(session, organization.id, entry.id, {"priority": "high"})


@pytest.mark.asyncio
async def test_update_entry_changes_order(session, organization, make_athlete, make_group):
    group = await make_group()
    ref = AthleteGroupRef(group.id)
    first = await waitlist.enqueue(session, organization.id, (await make_athlete("1")).id, ref)
    second = await waitlist.enqueue(session, organization.id, (await make_athlete("2")).id, ref)
    await waitlist.update_entry(session, organization.id, second.id, {"priority": "high", "notes": "coach request"})
    entries = await waitlist.list_for_reference(session, organization.id, ref)
    assert [e.id for e in entries] == [second.id, first.id]
    assert entries[0].notes == "coach request"


@pytest.mark.asyncio
async def test_bulk_operations_touch_only_waiting(session, organization, other_organization, make_athlete, make_group):
    group = await make_group()
    ref = AthleteGroupRef(group.id)
    entries = [await waitlist.enqueue(session, organization.id, (await make_athlete(str(i))).id, ref) for i in range(3)]
    await waitlist.cancel(session, organization.id, entries[0].id)
    ids = [e.id for e in entries]

    assert await waitlist.bulk_update_priority(session, organization.id, ids, WaitlistPriority.low) == 2
    # other organization cannot touch these rows
    assert await waitlist.bulk_cancel(session, other_organization.id, ids) == 0
    assert await waitlist.bulk_cancel(session, organization.id, ids) == 2
    assert await waitlist.bulk_cancel(session, organization.id, []) == 0
    assert await waitlist.count_waiting(session, organization.id, ref) == 0


@pytest.mark.asyncio
async def test_expire_overdue(session, organization, make_athlete, make_group):
    group = await make_group()
    ref = AthleteGroupRef(group.id)
    now = utcnow()
    overdue = await waitlist.enqueue(
        session, organization.id, (await make_athlete("Old")).id, ref, expires_at=now - timedelta(days=1)
    )
    fresh = await waitlist.enqueue(
        session, organization.id, (await make_athlete("New")).id, ref, expires_at=now + timedelta(days=1)
    )
    open_ended = await waitlist.enqueue(session, organization.id, (await make_athlete("Any")).id, ref)

    assert await waitlist.expire_overdue(session, organization.id, now=now) == 1
    entries, total = await waitlist.list_entries(
        session, organization.id, reference=ref, statuses=[WaitlistStatus.waiting]
    )
    assert total == 2
    assert {e.id for e in entries} == {fresh.id, open_ended.id}
    expired, _ = await waitlist.list_entries(session, organization.id, statuses=[WaitlistStatus.expired])
    assert [e.id for e in expired] == [overdue.id]


@pytest.mark.asyncio
async def test_cross_tenant_entry_not_found(session, organization, other_organization, make_athlete, make_group):
    group = await make_group()
    entry = await waitlist.enqueue(session, organization.id, (await make_athlete()).id, AthleteGroupRef(group.id))
    with pytest.raises(NotFound):
        await waitlist.get_entry(session, other_organization.id, entry.id)
    with pytest.raises(NotFound):
        await waitlist.promote(session, other_organization.id, entry.id)
