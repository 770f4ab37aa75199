"""Tests for steward.autonomy.gate.AutonomyGate"""

import pytest

from steward.autonomy import (
    AutonomyGate,
    AutonomyPermissionError,
    AutonomyPreset,
    AutonomySettings,
    AutonomySource,
    FeedbackDecision,
    GraduationTracker,
    SubscriptionTier,
)
from steward.tools.catalog import ToolCatalog
from steward.tools.models import AutonomyLevel, ToolCategory


@pytest.fixture
def catalog():
    return ToolCatalog.builtin()


@pytest.fixture
def tracker(clock):
    return GraduationTracker(clock=clock)


@pytest.fixture
def gate(tracker):
    return AutonomyGate(tracker)


def _graduate(tracker, tool_name, owner_id="own_1"):
    for _ in range(tracker.threshold):
        tracker.record(owner_id, tool_name, FeedbackDecision.APPROVED)
    return tracker.get(owner_id, tool_name)


BALANCED = AutonomySettings()
HANDS_OFF = AutonomySettings(preset=AutonomyPreset.HANDS_OFF)


# =========================================================================
# Tier gating
# =========================================================================


class TestTier:

    def test_integration_unreachable_on_starter(self, gate, catalog):
        with pytest.raises(AutonomyPermissionError) as exc_info:
            gate.resolve(catalog.get("syndicate_listing_domain"), BALANCED, "starter")
        assert exc_info.value.tier == SubscriptionTier.STARTER
        assert exc_info.value.category == ToolCategory.INTEGRATION
        assert "starter plan" in str(exc_info.value)

    def test_workflow_reachable_on_pro(self, gate, catalog):
        resolution = gate.resolve(catalog.get("workflow_find_tenant"), BALANCED, SubscriptionTier.PRO)
        assert resolution.level == AutonomyLevel.SUGGEST

    def test_workflow_unreachable_on_starter(self, gate, catalog):
        with pytest.raises(AutonomyPermissionError):
            gate.check_tier(catalog.get("workflow_find_tenant"), "starter")

    def test_unknown_tier_is_rejected(self, gate, catalog):
        with pytest.raises(ValueError):
            gate.resolve(catalog.get("get_property"), BALANCED, "platinum")


# =========================================================================
# Resolution
# =========================================================================


class TestResolution:

    def test_query_tools_run_autonomously(self, gate, catalog):
        resolution = gate.resolve(catalog.get("get_arrears"), BALANCED, "starter")
        assert resolution.level == AutonomyLevel.AUTONOMOUS
        assert resolution.source == AutonomySource.TOOL_DEFAULT
        assert resolution.requires_approval is False

    def test_balanced_action_needs_approval(self, gate, catalog):
        resolution = gate.resolve(catalog.get("send_rent_reminder"), BALANCED, "starter")
        assert resolution.level == AutonomyLevel.DRAFT
        assert resolution.requires_approval is True

    def test_hands_off_action_executes(self, gate, catalog):
        resolution = gate.resolve(catalog.get("send_rent_reminder"), HANDS_OFF, "starter")
        assert resolution.level == AutonomyLevel.EXECUTE
        assert resolution.requires_approval is False

    def test_high_risk_clamped_to_ceiling(self, gate, catalog):
        resolution = gate.resolve(catalog.get("send_breach_notice"), HANDS_OFF, "hands_off")
        assert resolution.requested_level == AutonomyLevel.EXECUTE
        assert resolution.ceiling == AutonomyLevel.SUGGEST
        assert resolution.level == AutonomyLevel.SUGGEST
        assert resolution.requires_approval is True

    def test_owner_override_wins_over_preset(self, gate, catalog):
        settings = AutonomySettings(category_overrides={ToolCategory.ACTION: AutonomyLevel.AUTONOMOUS})
        resolution = gate.resolve(catalog.get("send_rent_reminder"), settings, "starter")
        assert resolution.source == AutonomySource.OWNER_OVERRIDE
        assert resolution.requested_level == AutonomyLevel.AUTONOMOUS
        # Low risk ceiling is EXECUTE
        assert resolution.level == AutonomyLevel.EXECUTE

    def test_override_can_lower_level(self, gate, catalog):
        settings = AutonomySettings(category_overrides={ToolCategory.QUERY: AutonomyLevel.SUGGEST})
        resolution = gate.resolve(catalog.get("get_arrears"), settings, "starter")
        assert resolution.level == AutonomyLevel.SUGGEST
        assert resolution.requires_approval is True

    def test_caller_cap_lowers_level(self, gate, catalog):
        resolution = gate.resolve(
            catalog.get("send_rent_reminder"), HANDS_OFF, "starter", cap=AutonomyLevel.DRAFT
        )
        assert resolution.level == AutonomyLevel.DRAFT
        assert resolution.requires_approval is True

    def test_cap_above_level_is_ignored(self, gate, catalog):
        resolution = gate.resolve(
            catalog.get("send_rent_reminder"), BALANCED, "starter", cap=AutonomyLevel.AUTONOMOUS
        )
        assert resolution.level == AutonomyLevel.DRAFT

    def test_custom_auto_execute_level(self, catalog):
        gate = AutonomyGate(auto_execute_level="L2")
        resolution = gate.resolve(catalog.get("send_rent_reminder"), BALANCED, "starter")
        assert resolution.requires_approval is False


class TestHardBlock:

    def test_critical_tool_always_needs_approval(self, gate, catalog):
        settings = AutonomySettings(
            preset=AutonomyPreset.HANDS_OFF,
            category_overrides={ToolCategory.ACTION: AutonomyLevel.AUTONOMOUS},
        )
        resolution = gate.resolve(catalog.get("terminate_lease"), settings, "hands_off")
        assert resolution.level == AutonomyLevel.INFORM
        assert resolution.source == AutonomySource.HARD_BLOCK
        assert resolution.requires_approval is True

    def test_graduation_cannot_lift_hard_block(self, gate, tracker, catalog):
        record = _graduate(tracker, "claim_bond")
        resolution = gate.resolve(catalog.get("claim_bond"), HANDS_OFF, "hands_off", graduation=record)
        assert resolution.level == AutonomyLevel.INFORM
        assert resolution.source == AutonomySource.HARD_BLOCK


# =========================================================================
# Graduation
# =========================================================================


class TestGraduatedResolution:

    def test_graduated_tool_gets_one_level(self, gate, tracker, catalog):
        record = _graduate(tracker, "send_rent_reminder")
        resolution = gate.resolve(catalog.get("send_rent_reminder"), BALANCED, "starter", graduation=record)
        assert resolution.level == AutonomyLevel.EXECUTE
        assert resolution.source == AutonomySource.GRADUATED
        assert resolution.requires_approval is False
        assert resolution.approval_streak == 10
        assert resolution.graduation_threshold == 10

    def test_streak_below_threshold_has_no_effect(self, gate, tracker, catalog):
        for _ in range(9):
            tracker.record("own_1", "send_rent_reminder", FeedbackDecision.APPROVED)
        record = tracker.get("own_1", "send_rent_reminder")
        resolution = gate.resolve(catalog.get("send_rent_reminder"), BALANCED, "starter", graduation=record)
        assert resolution.level == AutonomyLevel.DRAFT
        assert resolution.source == AutonomySource.TOOL_DEFAULT
        assert resolution.approval_streak == 9

    def test_graduation_does_not_exceed_autonomous(self, gate, tracker, catalog):
        record = _graduate(tracker, "get_arrears")
        resolution = gate.resolve(catalog.get("get_arrears"), BALANCED, "starter", graduation=record)
        assert resolution.level == AutonomyLevel.AUTONOMOUS

    def test_resolution_is_pure(self, gate, tracker, catalog):
        record = _graduate(tracker, "send_rent_reminder")
        tool = catalog.get("send_rent_reminder")
        first = gate.resolve(tool, BALANCED, "starter", graduation=record)
        second = gate.resolve(tool, BALANCED, "starter", graduation=record)
        assert first == second
        assert record.consecutive_approvals == 10

    def test_resolution_to_dict(self, gate, catalog):
        data = gate.resolve(catalog.get("send_breach_notice"), BALANCED, "starter").to_dict()
        assert data["tool_name"] == "send_breach_notice"
        assert data["category"] == "action"
        assert data["risk_level"] == "high"
        assert data["level"] == 1
        assert data["source"] == "tool_default"
