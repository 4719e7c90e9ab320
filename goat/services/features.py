"""Per-organization feature flags.

Features are enabled unless an organization_features row explicitly disables
them. Lookups return a FeatureState rather than a bare bool so callers never
confuse "no row" with "disabled".
"""
from __future__ import annotations

import enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from goat.errors import FeatureDisabled
from goat.models import OrganizationFeatureSetting
from goat.models.enums import OrganizationFeature


class FeatureState(str, enum.Enum):
    enabled = "enabled"
    disabled = "disabled"


DEFAULT_FEATURE_STATE = FeatureState.enabled


async def get_feature_state(
    session: AsyncSession, organization_id: int, feature: OrganizationFeature
) -> FeatureState:
    """State of one feature; DEFAULT_FEATURE_STATE when the organization has no row for it."""
    result = await session.execute(
        select(OrganizationFeatureSetting).where(
            OrganizationFeatureSetting.organization_id == organization_id,
            OrganizationFeatureSetting.feature == feature.value,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        return DEFAULT_FEATURE_STATE
    return FeatureState.enabled if row.enabled else FeatureState.disabled


async def assert_feature_enabled(
    session: AsyncSession, organization_id: int, feature: OrganizationFeature
) -> None:
    """Raise FeatureDisabled unless the feature is enabled for the organization."""
    if await get_feature_state(session, organization_id, feature) is FeatureState.disabled:
        raise FeatureDisabled(f'Feature "{feature.value}" is not enabled for this organization')


async def get_all_feature_states(
    session: AsyncSession, organization_id: int
) -> dict[OrganizationFeature, FeatureState]:
    result = await session.execute(
        select(OrganizationFeatureSetting).where(OrganizationFeatureSetting.organization_id == organization_id)
    )
    explicit = {row.feature: row.enabled for row in result.scalars().all()}
    states = {}
    for feature in OrganizationFeature:
        if feature.value in explicit:
            states[feature] = FeatureState.enabled if explicit[feature.value] else FeatureState.disabled
        else:
            states[feature] = DEFAULT_FEATURE_STATE
    return states


async def set_feature_state(
    session: AsyncSession, organization_id: int, feature: OrganizationFeature, state: FeatureState
) -> None:
    """Upsert the explicit row for a feature. Caller commits."""
    result = await session.execute(
        select(OrganizationFeatureSetting).where(
            OrganizationFeatureSetting.organization_id == organization_id,
            OrganizationFeatureSetting.feature == feature.value,
        )
    )
    row = result.scalar_one_or_none()
    enabled = state is FeatureState.enabled
    if row:
        row.enabled = enabled
    else:
        session.add(
            OrganizationFeatureSetting(organization_id=organization_id, feature=feature.value, enabled=enabled)
        )
    await session.flush()
