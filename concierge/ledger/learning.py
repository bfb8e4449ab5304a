"""Pattern learning: promote LLM-discovered phrasings into the rule tier."""

from concierge.catalog.store import CatalogStore
from concierge.config.models.learning import LearningConfig
from concierge.errors import StoreError
from concierge.ledger.models import LearnedPattern, PatternKind, PatternObservation
from concierge.ledger.store import LedgerStore
from concierge.observability.logging import get_logger
from concierge.observability.metrics import LEDGER_WRITE_FAILURES, PATTERNS_PROMOTED

logger = get_logger(__name__)


class PatternLearner:
    """Counts pattern sightings and promotes those that clear the bar.

    A pattern is promoted once its highest observed confidence reaches
    ``min_confidence`` and it has been seen ``min_repeat_count`` times.
    Patterns below that but above ``suggestion_confidence`` are kept as
    pending for review. Promotion is idempotent: the catalog append is a
    no-op for a phrase that is already present.
    """

    def __init__(
        self,
        ledger_store: LedgerStore,
        catalog_store: CatalogStore,
        config: LearningConfig | None = None,
    ) -> None:
        self._ledger_store = ledger_store
        self._catalog = catalog_store
        self._config = config or LearningConfig()

    @property
    def config(self) -> LearningConfig:
        return self._config

    async def learn(self, patterns: list[LearnedPattern]) -> list[LearnedPattern]:
        """Observe patterns from one LLM call and promote eligible ones.

        Storage failures are logged and skipped.

        Returns:
            Patterns that changed the catalog
        """
        if not self._config.enabled:
            return []

        promoted: list[LearnedPattern] = []
        for pattern in patterns[: self._config.max_patterns_per_call]:
            if pattern.confidence < self._config.suggestion_confidence:
                logger.debug(
                    "pattern_below_suggestion_confidence",
                    phrase=pattern.phrase,
                    confidence=pattern.confidence,
                )
                continue

            try:
                observation = await self._ledger_store.record_observation(pattern)
                if not self._is_promotable(observation) or observation.promoted:
                    continue
                if await self.promote(pattern):
                    promoted.append(pattern)
            except StoreError as e:
                LEDGER_WRITE_FAILURES.labels(operation="learn_pattern").inc()
                logger.warning(
                    "pattern_learning_failed",
                    phrase=pattern.phrase,
                    kind=pattern.kind.value,
                    error=str(e),
                )

        return promoted

    async def promote(self, pattern: LearnedPattern) -> bool:
        """Merge a pattern into its template.

        Safe to call concurrently for the same pattern: exactly one call
        changes the catalog and returns True.
        """
        changed = await self._apply(pattern)
        await self._ledger_store.promote_pattern(pattern)

        if changed:
            PATTERNS_PROMOTED.labels(kind=pattern.kind.value).inc()
            logger.info(
                "pattern_promoted",
                kind=pattern.kind.value,
                phrase=pattern.phrase,
                template_id=pattern.template_id,
                scenario_id=pattern.mapped_scenario_id,
                canonical=pattern.canonical,
                confidence=pattern.confidence,
                tenant_id=pattern.tenant_id,
            )
        return changed

    async def list_pending_patterns(
        self, template_id: str | None = None
    ) -> list[PatternObservation]:
        """Observed but not promoted patterns, most confident first."""
        pending = await self._ledger_store.list_observations(template_id, promoted=False)
        return sorted(pending, key=lambda o: (-o.max_confidence, -o.count, o.key))

    def _is_promotable(self, observation: PatternObservation) -> bool:
        return (
            observation.max_confidence >= self._config.min_confidence
            and observation.count >= self._config.min_repeat_count
        )

    async def _apply(self, pattern: LearnedPattern) -> bool:
        if pattern.kind == PatternKind.TRIGGER:
            if not pattern.mapped_scenario_id:
                return False
            return await self._catalog.add_trigger(
                pattern.template_id, pattern.mapped_scenario_id, pattern.phrase
            )
        if pattern.kind == PatternKind.SYNONYM:
            if not pattern.canonical:
                return False
            return await self._catalog.add_synonym(
                pattern.template_id, pattern.canonical, pattern.phrase
            )
        return await self._catalog.add_filler(pattern.template_id, pattern.phrase)
