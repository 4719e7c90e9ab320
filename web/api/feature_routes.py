"""Organization feature toggles (member read, admin write)."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from goat.models.base import async_session_factory
from goat.models.enums import OrganizationFeature
from goat.services.features import FeatureState, get_all_feature_states, set_feature_state
from web.auth import OrgContext, get_admin_context, get_org_context

logger = logging.getLogger("goat.features")

router = APIRouter(prefix="/api/features", tags=["features"])


async def _states(organization_id: int) -> dict[str, bool]:
    async with async_session_factory() as session:
        states = await get_all_feature_states(session, organization_id)
    return {feature.value: state is FeatureState.enabled for feature, state in states.items()}


@router.get("")
async def get_features(ctx: OrgContext = Depends(get_org_context)):
    """All features with their effective state. Features without a stored row are enabled."""
    return await _states(ctx.organization_id)


@router.patch("")
async def update_features(body: dict[OrganizationFeature, bool], ctx: OrgContext = Depends(get_admin_context)):
    """Enable or disable features (admin only)."""
    async with async_session_factory() as session:
        for feature, enabled in body.items():
            state = FeatureState.enabled if enabled else FeatureState.disabled
            await set_feature_state(session, ctx.organization_id, feature, state)
        await session.commit()
    if body:
        logger.info(
            "Org %s features updated: %s",
            ctx.organization_id,
            ", ".join(f"{f.value}={'on' if on else 'off'}" for f, on in body.items()),
        )
    return await _states(ctx.organization_id)
