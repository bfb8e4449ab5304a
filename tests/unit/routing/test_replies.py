"""Tests for reply selection."""

import pytest

from concierge.routing.models import CallSession
from concierge.routing.replies import ReplySelector
from tests.factories import ScenarioFactory


@pytest.fixture
def scenario():
    return ScenarioFactory.create(
        quick_replies=["First", "Second", "Third"],
        full_replies=["The long answer"],
    )


class TestReplySelector:
    """Tests for ReplySelector."""

    def test_single_variant(self):
        """Should return the only variant."""
        assert ReplySelector().select(ScenarioFactory.create()) == "Sure, let's get you booked."

    def test_no_replies(self):
        """Should return None when the scenario has no replies."""
        scenario = ScenarioFactory.create(quick_replies=[], full_replies=[])

        assert ReplySelector().select(scenario) is None

    def test_full_reply(self, scenario):
        """Should use full replies on request."""
        assert ReplySelector().select(scenario, full=True) == "The long answer"

    def test_full_falls_back_to_quick(self):
        """Should fall back to quick replies when no full reply exists."""
        scenario = ScenarioFactory.create(quick_replies=["Quick"])

        assert ReplySelector().select(scenario, full=True) == "Quick"

    def test_sequential_cycles_per_session(self, scenario):
        """Should walk the variants in order and wrap around."""
        selector = ReplySelector("sequential")
        session = CallSession(call_id="c-1")

        picks = [selector.select(scenario, session) for _ in range(4)]

        assert picks == ["First", "Second", "Third", "First"]
        assert session.reply_cursor == {"book_appointment:quick": 4}

    def test_sequential_without_session(self, scenario):
        """Should return the first variant when there is no session."""
        assert ReplySelector("sequential").select(scenario) == "First"

    @pytest.mark.parametrize("policy", ["random", "weighted"])
    def test_seeded_selection_is_reproducible(self, scenario, policy):
        """Should pick the same variant for the same seed, call and turn."""
        selector = ReplySelector(policy)
        session = CallSession(call_id="c-1", turn=3)

        picks = {selector.select(scenario, session, seed=42) for _ in range(10)}

        assert len(picks) == 1

    def test_weighted_follows_weights(self):
        """Should strongly favor the heavy variant."""
        scenario = ScenarioFactory.create(
            quick_replies=[{"text": "Heavy", "weight": 1000}, {"text": "Light", "weight": 0.001}]
        )
        selector = ReplySelector("weighted")

        picks = [
            selector.select(scenario, CallSession(call_id="c-1", turn=turn), seed=7)
            for turn in range(20)
        ]

        assert picks == ["Heavy"] * 20

    def test_policy_property(self):
        """Should expose the configured policy."""
        assert ReplySelector("random").policy == "random"
