"""Tests for capacity checks and registration against groups, sessions and events."""
import pytest

from goat.errors import CapacityExceeded, DuplicateEntry, NotFound
from goat.models.enums import EventRegistrationStatus, OrganizationFeature, WaitlistPriority
from goat.models import SportsEvent
from goat.services import capacity, waitlist
from goat.services.capacity import CapacityHolder, has_capacity, spots_available
from goat.services.features import FeatureState, set_feature_state
from goat.services.references import AthleteGroupRef, TrainingSessionRef


def test_has_capacity_unbounded():
    holder = CapacityHolder(max_capacity=None, current_registrations=10_000)
    assert has_capacity(holder)
    assert spots_available(holder) is None


def test_has_capacity_bounded():
    assert has_capacity(CapacityHolder(max_capacity=10, current_registrations=9))
    assert not has_capacity(CapacityHolder(max_capacity=10, current_registrations=10))
    assert spots_available(CapacityHolder(max_capacity=10, current_registrations=12)) == 0


@pytest.mark.asyncio
async def test_register_until_full_then_waitlist(session, organization, make_athlete, make_group):
    group = await make_group(max_capacity=2)
    ref = AthleteGroupRef(group.id)
    athletes = [await make_athlete(f"A{i}") for i in range(3)]

    for athlete in athletes[:2]:
        outcome = await capacity.register_athlete(session, organization.id, athlete.id, ref)
        assert outcome.status == "registered"

    outcome = await capacity.register_athlete(
        session, organization.id, athletes[2].id, ref, priority=WaitlistPriority.high
    )
    assert outcome.status == "waitlisted"
    assert outcome.waitlist_entry.priority == "high"

    holder = await capacity.get_capacity(session, organization.id, ref)
    assert holder.current_registrations == 2
    assert not has_capacity(holder)


@pytest.mark.asyncio
async def test_unbounded_group_never_waitlists(session, organization, make_athlete, make_group):
    group = await make_group(max_capacity=None)
    ref = AthleteGroupRef(group.id)
    for i in range(25):
        athlete = await make_athlete(f"A{i}")
        outcome = await capacity.register_athlete(session, organization.id, athlete.id, ref)
        assert outcome.status == "registered"
    assert await waitlist.count_waiting(session, organization.id, ref) == 0


@pytest.mark.asyncio
async def test_full_without_waitlist_rejects(session, organization, make_athlete, make_training_session):
    training_session = await make_training_session(max_capacity=1, enable_waitlist=False)
    ref = TrainingSessionRef(training_session.id)
    first = await make_athlete("First")
    second = await make_athlete("Second")
    await capacity.register_athlete(session, organization.id, first.id, ref)
    with pytest.raises(CapacityExceeded):
        await capacity.register_athlete(session, organization.id, second.id, ref)


@pytest.mark.asyncio
async def test_full_with_waitlist_feature_disabled_rejects(session, organization, make_athlete, make_group):
    await set_feature_state(session, organization.id, OrganizationFeature.waitlist, FeatureState.disabled)
    group = await make_group(max_capacity=1)
    ref = AthleteGroupRef(group.id)
    await capacity.register_athlete(session, organization.id, (await make_athlete("A")).id, ref)
    with pytest.raises(CapacityExceeded):
        await capacity.register_athlete(session, organization.id, (await make_athlete("B")).id, ref)


@pytest.mark.asyncio
async def test_register_twice_is_duplicate(session, organization, make_athlete, make_group):
    group = await make_group()
    athlete = await make_athlete()
    ref = AthleteGroupRef(group.id)
    await capacity.register_athlete(session, organization.id, athlete.id, ref)
    with pytest.raises(DuplicateEntry):
        await capacity.register_athlete(session, organization.id, athlete.id, ref)


@pytest.mark.asyncio
async def test_cross_tenant_holder_not_found(session, organization, other_organization, make_athlete, make_group):
    foreign_group = await make_group(name="Foreign", organization_id=other_organization.id)
    athlete = await make_athlete()
    with pytest.raises(NotFound):
        await capacity.get_capacity(session, organization.id, AthleteGroupRef(foreign_group.id))
    with pytest.raises(NotFound):
        await capacity.register_athlete(session, organization.id, athlete.id, AthleteGroupRef(foreign_group.id))


@pytest.mark.asyncio
async def test_unregister_frees_slot_without_auto_promotion(session, organization, make_athlete, make_group):
    group = await make_group(max_capacity=1)
    ref = AthleteGroupRef(group.id)
    first = await make_athlete("First")
    second = await make_athlete("Second")
    await capacity.register_athlete(session, organization.id, first.id, ref)
    await capacity.register_athlete(session, organization.id, second.id, ref)

    waiting = await capacity.unregister_athlete(session, organization.id, first.id, ref)
    assert waiting == 1
    holder = await capacity.get_capacity(session, organization.id, ref)
    assert holder.current_registrations == 0

    with pytest.raises(NotFound):
        await capacity.unregister_athlete(session, organization.id, first.id, ref)


@pytest.mark.asyncio
async def test_event_registration_goes_to_waitlist_when_full(session, organization):
    event = SportsEvent(organization_id=organization.id, title="Open day", max_capacity=1, enable_waitlist=True)
    session.add(event)
    await session.flush()

    first = await capacity.register_for_event(session, organization.id, event.id, registrant_name="Ana")
    second = await capacity.register_for_event(session, organization.id, event.id, registrant_name="Bea")
    third = await capacity.register_for_event(session, organization.id, event.id, registrant_name="Cai")
    assert first.status == EventRegistrationStatus.confirmed.value
    assert (second.status, second.waitlist_position) == ("waitlist", 1)
    assert (third.status, third.waitlist_position) == ("waitlist", 2)
    assert [r.registration_number for r in (first, second, third)] == [1, 2, 3]

    promoted = await capacity.promote_event_registration(session, organization.id, second.id)
    assert promoted.status == "confirmed"
    assert promoted.waitlist_position is None
    with pytest.raises(NotFound):
        await capacity.promote_event_registration(session, organization.id, second.id)


@pytest.mark.asyncio
async def test_event_full_without_waitlist_rejects(session, organization):
    event = SportsEvent(organization_id=organization.id, title="Clinic", max_capacity=1, enable_waitlist=False)
    session.add(event)
    await session.flush()
    await capacity.register_for_event(session, organization.id, event.id, registrant_name="Ana")
    with pytest.raises(CapacityExceeded, match="waitlist is disabled"):
        await capacity.register_for_event(session, organization.id, event.id, registrant_name="Bea")


@pytest.mark.asyncio
async def test_cancelled_event_registration_frees_slot(session, organization):
    event = SportsEvent(organization_id=organization.id, title="Clinic", max_capacity=1, enable_waitlist=False)
    session.add(event)
    await session.flush()
    first = await capacity.register_for_event(session, organization.id, event.id, registrant_name="Ana")
    await capacity.cancel_event_registration(session, organization.id, first.id)
    second = await capacity.register_for_event(session, organization.id, event.id, registrant_name="Bea")
    assert second.status == "confirmed"
    with pytest.raises(NotFound):
        await capacity.cancel_event_registration(session, organization.id, first.id)


@pytest.mark.asyncio
async def test_recount_rejects_registration_lost_to_concurrent_insert(
    session, organization, make_athlete, make_group, monkeypatch
):
    """A slot taken after the capacity snapshot is caught by the post-insert recount."""
    group = await make_group(max_capacity=1)
    ref = AthleteGroupRef(group.id)
    first = await make_athlete("First")
    late = await make_athlete("Late")
    await capacity.register_athlete(session, organization.id, first.id, ref)

    async def stale_capacity(session, organization_id, reference, *, for_update=False):
        return CapacityHolder(max_capacity=1, current_registrations=0)

    monkeypatch.setattr(capacity, "get_capacity", stale_capacity)
    with pytest.raises(CapacityExceeded):
        await capacity.register_athlete(session, organization.id, late.id, ref)

    # the rejected membership was rolled back
    assert await capacity.count_registrations(session, ref) == 1
    assert not await capacity._is_registered(session, ref, late.id)
