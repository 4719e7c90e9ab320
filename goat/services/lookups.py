"""Tenant-scoped row lookups shared by the services."""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from goat.errors import NotFound
from goat.models import Athlete
from goat.services.references import AthleteGroupRef, Reference, TrainingSessionRef, holder_model


def reference_label(reference: Reference) -> str:
    if isinstance(reference, TrainingSessionRef):
        return "Training session"
    if isinstance(reference, AthleteGroupRef):
        return "Athlete group"
    raise TypeError(f"Unsupported reference: {reference!r}")


async def get_athlete(session: AsyncSession, organization_id: int, athlete_id: int) -> Athlete:
    athlete = await session.get(Athlete, athlete_id)
    if not athlete or athlete.organization_id != organization_id:
        raise NotFound("Athlete not found")
    return athlete


async def get_holder(
    session: AsyncSession, organization_id: int, reference: Reference, *, for_update: bool = False
):
    """Load the capacity holder for a reference, optionally locking its row (SELECT ... FOR UPDATE)."""
    model = holder_model(reference)
    holder = await session.get(model, reference.id, with_for_update=True if for_update else None)
    if not holder or holder.organization_id != organization_id:
        raise NotFound(f"{reference_label(reference)} not found")
    return holder
