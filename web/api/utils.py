"""Shared API utilities."""

from fastapi import Depends

from goat.models.base import async_session_factory
from goat.models.enums import OrganizationFeature, WaitlistReferenceType
from goat.services.features import assert_feature_enabled
from goat.services.references import Reference, make_reference
from web.auth import OrgContext, get_org_context


def require_feature(feature: OrganizationFeature):
    """Router dependency: 403 unless the caller's organization has the feature enabled."""

    async def dependency(ctx: OrgContext = Depends(get_org_context)) -> OrgContext:
        async with async_session_factory() as session:
            await assert_feature_enabled(session, ctx.organization_id, feature)
        return ctx

    return dependency


def to_reference(reference_type: WaitlistReferenceType, reference_id: int) -> Reference:
    return make_reference(WaitlistReferenceType(reference_type).value, reference_id)


def page(items: list, total: int, limit: int, offset: int) -> dict:
    return {"items": items, "total": total, "limit": limit, "offset": offset}
