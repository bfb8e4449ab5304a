"""Reply variant selection.

Selection is deterministic for a given seed, call, scenario and turn so
that conversations can be replayed in tests.
"""

import random

from concierge.catalog.models import ReplyVariant, Scenario
from concierge.config.models.routing import ReplySelectionPolicy
from concierge.routing.models import CallSession


class ReplySelector:
    """Picks one reply variant for a matched scenario.

    Policies:
    - sequential: cycle through variants per call session
    - random: uniform pick from a seeded generator
    - weighted: pick by variant weight from a seeded generator
    """

    def __init__(self, policy: ReplySelectionPolicy = "weighted") -> None:
        self._policy = policy

    @property
    def policy(self) -> ReplySelectionPolicy:
        return self._policy

    def select(
        self,
        scenario: Scenario,
        session: CallSession | None = None,
        seed: int | None = None,
        full: bool = False,
    ) -> str | None:
        """Reply text, or None when the scenario has no replies.

        Quick replies are used unless ``full`` is set; either list falls
        back to the other when empty.
        """
        variants = self._variants(scenario, full)
        if not variants:
            return None
        if len(variants) == 1:
            return variants[0].text

        if self._policy == "sequential":
            return self._sequential(scenario, variants, session, full)

        rng = random.Random(self._seed_key(scenario, session, seed))
        if self._policy == "random":
            return rng.choice(variants).text
        return rng.choices(variants, weights=[v.weight for v in variants])[0].text

    @staticmethod
    def _variants(scenario: Scenario, full: bool) -> list[ReplyVariant]:
        primary, secondary = (
            (scenario.full_replies, scenario.quick_replies)
            if full
            else (scenario.quick_replies, scenario.full_replies)
        )
        return list(primary or secondary)

    @staticmethod
    def _sequential(
        scenario: Scenario,
        variants: list[ReplyVariant],
        session: CallSession | None,
        full: bool,
    ) -> str:
        if session is None:
            return variants[0].text
        key = f"{scenario.id}:{'full' if full else 'quick'}"
        cursor = session.reply_cursor.get(key, 0)
        session.reply_cursor = {**session.reply_cursor, key: cursor + 1}
        return variants[cursor % len(variants)].text

    @staticmethod
    def _seed_key(scenario: Scenario, session: CallSession | None, seed: int | None) -> str:
        call_id = session.call_id if session else ""
        turn = session.turn if session else 0
        return f"{seed if seed is not None else 0}:{call_id}:{scenario.id}:{turn}"
