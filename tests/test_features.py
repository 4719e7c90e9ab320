"""Tests for per-organization feature flags."""
import pytest

from goat.errors import FeatureDisabled
from goat.models.enums import OrganizationFeature
from goat.services.features import (
    DEFAULT_FEATURE_STATE,
    FeatureState,
    assert_feature_enabled,
    get_all_feature_states,
    get_feature_state,
    set_feature_state,
)


@pytest.mark.asyncio
async def test_missing_row_means_enabled(session, organization):
    assert DEFAULT_FEATURE_STATE is FeatureState.enabled
    state = await get_feature_state(session, organization.id, OrganizationFeature.cash_register)
    assert state is FeatureState.enabled
    await assert_feature_enabled(session, organization.id, OrganizationFeature.cash_register)


@pytest.mark.asyncio
async def test_disable_and_reenable(session, organization, other_organization):
    await set_feature_state(session, organization.id, OrganizationFeature.waitlist, FeatureState.disabled)
    assert await get_feature_state(session, organization.id, OrganizationFeature.waitlist) is FeatureState.disabled
    with pytest.raises(FeatureDisabled):
        await assert_feature_enabled(session, organization.id, OrganizationFeature.waitlist)
    # other tenants are unaffected
    assert await get_feature_state(session, other_organization.id, OrganizationFeature.waitlist) is FeatureState.enabled

    await set_feature_state(session, organization.id, OrganizationFeature.waitlist, FeatureState.enabled)
    await assert_feature_enabled(session, organization.id, OrganizationFeature.waitlist)


@pytest.mark.asyncio
async def test_all_feature_states(session, organization):
    await set_feature_state(session, organization.id, OrganizationFeature.expenses, FeatureState.disabled)
    states = await get_all_feature_states(session, organization.id)
    assert set(states) == set(OrganizationFeature)
    assert states[OrganizationFeature.expenses] is FeatureState.disabled
    assert all(s is FeatureState.enabled for f, s in states.items() if f is not OrganizationFeature.expenses)
