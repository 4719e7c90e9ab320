"""Typed references to capacity holders.

Waitlist entries and registrations point at either a training session or an
athlete group. In the database this is a (reference_type, reference_id) pair;
in code it is one of the frozen dataclasses below so every dispatch site
handles each kind explicitly.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Union

from goat.models import (
    AthleteGroup,
    AthleteGroupMember,
    TrainingSession,
    TrainingSessionAthlete,
)
from goat.models.enums import WaitlistReferenceType


@dataclass(frozen=True)
class TrainingSessionRef:
    id: int

    reference_type: ClassVar[WaitlistReferenceType] = WaitlistReferenceType.training_session


@dataclass(frozen=True)
class AthleteGroupRef:
    id: int

    reference_type: ClassVar[WaitlistReferenceType] = WaitlistReferenceType.athlete_group


Reference = Union[TrainingSessionRef, AthleteGroupRef]


def make_reference(reference_type: str, reference_id: int) -> Reference:
    """Build a typed reference from its stored (type, id) pair."""
    if reference_type == WaitlistReferenceType.training_session:
        return TrainingSessionRef(reference_id)
    if reference_type == WaitlistReferenceType.athlete_group:
        return AthleteGroupRef(reference_id)
    raise ValueError(f"Unknown reference type: {reference_type!r}")


def holder_model(reference: Reference):
    """ORM class of the capacity holder a reference points at."""
    if isinstance(reference, TrainingSessionRef):
        return TrainingSession
    if isinstance(reference, AthleteGroupRef):
        return AthleteGroup
    raise TypeError(f"Unsupported reference: {reference!r}")


def member_model(reference: Reference):
    """Return (membership ORM class, foreign-key column to the holder)."""
    if isinstance(reference, TrainingSessionRef):
        return TrainingSessionAthlete, TrainingSessionAthlete.session_id
    if isinstance(reference, AthleteGroupRef):
        return AthleteGroupMember, AthleteGroupMember.group_id
    raise TypeError(f"Unsupported reference: {reference!r}")


def new_membership(reference: Reference, athlete_id: int):
    """Unsaved membership row linking an athlete to the holder."""
    if isinstance(reference, TrainingSessionRef):
        return TrainingSessionAthlete(session_id=reference.id, athlete_id=athlete_id)
    if isinstance(reference, AthleteGroupRef):
        return AthleteGroupMember(group_id=reference.id, athlete_id=athlete_id)
    raise TypeError(f"Unsupported reference: {reference!r}")
