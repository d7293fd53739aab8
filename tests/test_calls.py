import pytest
import os
import sys
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from calls.routing import (
    CallFlow,
    CallRouter,
    CallRoutingConfig,
    CallState,
    InvalidTransition,
    Leg,
    decide_leg,
)

NEW_YORK = ZoneInfo("America/New_York")


def at_hour(hour: int) -> datetime:
    return datetime(2026, 7, 14, hour, 30, tzinfo=NEW_YORK)


class TestCallRouting:
    """Test time-of-day routing and failover."""

    def setup_method(self):
        """Set up test fixtures."""
        self.config = CallRoutingConfig(
            primary_number="+15415550100",
            fallback_number="+17865550199",
            cutoff_hour=13,
            timezone="America/New_York",
            ring_timeout=20,
        )

    def router_at(self, hour: int) -> CallRouter:
        return CallRouter(self.config, clock=lambda: at_hour(hour))

    def test_morning_call_dials_primary_with_failover(self):
        outcome = self.router_at(9).on_inbound_call()
        xml = outcome.to_xml()

        assert outcome.decision.target_leg is Leg.PRIMARY
        assert outcome.decision.local_hour == 9
        assert outcome.state is CallState.DIALING_PRIMARY
        assert 'timeout="20"' in xml
        assert 'action="/calls/failover?leg=primary"' in xml
        assert 'method="POST"' in xml
        assert "<Number>+15415550100</Number>" in xml
        assert "+17865550199" not in xml

    def test_afternoon_call_dials_fallback_directly(self):
        outcome = self.router_at(14).on_inbound_call()
        xml = outcome.to_xml()

        assert outcome.decision.target_leg is Leg.FALLBACK
        assert outcome.state is CallState.DIALING_FALLBACK
        assert "+17865550199" in xml
        assert "timeout=" not in xml
        assert "action=" not in xml
        assert "+15415550100" not in xml

    def test_cutoff_hour_routes_to_fallback(self):
        outcome = self.router_at(13).on_inbound_call()

        assert outcome.decision.target_leg is Leg.FALLBACK

    def test_hour_before_cutoff_routes_to_primary(self):
        assert self.router_at(12).on_inbound_call().decision.target_leg is Leg.PRIMARY

    def test_decision_uses_configured_timezone(self):
        # 16:00 UTC is 12:00 in New York during daylight time
        now = datetime(2026, 7, 14, 16, 0, tzinfo=timezone.utc)

        decision = decide_leg(now, self.config)

        assert decision.local_hour == 12
        assert decision.target_leg is Leg.PRIMARY

    def test_decision_in_another_zone(self):
        config = CallRoutingConfig(primary_number="+1", fallback_number="+2", cutoff_hour=13,
                                   timezone="America/Los_Angeles")
        now = datetime(2026, 7, 14, 16, 0, tzinfo=timezone.utc)

        assert decide_leg(now, config).local_hour == 9

    def test_inbound_flow_history(self):
        outcome = self.router_at(9).on_inbound_call()

        assert outcome.flow.history == [CallState.IDLE, CallState.DECIDING]

    def test_no_answer_fails_over_with_announcement(self):
        outcome = self.router_at(10).on_dial_status("no-answer")
        xml = outcome.to_xml()

        assert outcome.decision.target_leg is Leg.FALLBACK
        assert outcome.state is CallState.DIALING_FALLBACK
        assert CallState.FAILOVER in outcome.flow.history
        assert "Transferring you to our virtual assistant." in xml
        assert xml.index("<Say") < xml.index("<Dial")
        assert "+17865550199" in xml

    @pytest.mark.parametrize("status", ["busy", "failed", "canceled", "", None])
    def test_other_statuses_fail_over(self, status):
        outcome = self.router_at(10).on_dial_status(status)

        assert outcome.state is CallState.DIALING_FALLBACK
        assert "<Dial" in outcome.to_xml()

    def test_completed_primary_ends_call(self):
        outcome = self.router_at(10).on_dial_status("completed")
        xml = outcome.to_xml()

        assert outcome.state is CallState.ENDED
        assert outcome.decision is None
        assert "<Hangup" in xml
        assert "<Dial" not in xml

    def test_failover_without_announcement(self):
        config = CallRoutingConfig(primary_number="+1", fallback_number="+2", transfer_message="")
        outcome = CallRouter(config, clock=lambda: at_hour(10)).on_dial_status("no-answer")

        assert "<Say" not in outcome.to_xml()

    @pytest.mark.parametrize("status", ["completed", "no-answer", "failed"])
    def test_fallback_leg_is_terminal(self, status):
        outcome = self.router_at(10).on_dial_status(status, leg=Leg.FALLBACK)
        xml = outcome.to_xml()

        assert outcome.state is CallState.ENDED
        assert "<Hangup" in xml
        assert "<Dial" not in xml

    def test_invalid_transition_rejected(self):
        flow = CallFlow()

        with pytest.raises(InvalidTransition):
            flow.advance(CallState.DIALING_PRIMARY)

    def test_ended_is_terminal(self):
        flow = CallFlow(state=CallState.ENDED)

        with pytest.raises(InvalidTransition):
            flow.advance(CallState.DIALING_FALLBACK)

    def test_config_from_env(self, monkeypatch):
        monkeypatch.setenv("CALL_CUTOFF_HOUR", "12")
        monkeypatch.setenv("CALL_TIMEZONE", "America/Chicago")
        monkeypatch.setenv("PRIMARY_NUMBER", "+15415050249")

        config = CallRoutingConfig.from_env()

        assert config.cutoff_hour == 12
        assert config.timezone == "America/Chicago"
        assert config.primary_number == "+15415050249"
        assert config.ring_timeout == 20
