"""Budget and learning ledger."""

from concierge.ledger.budget import BudgetLedger, Reservation, TenantBudget
from concierge.ledger.inmemory import InMemoryLedgerStore
from concierge.ledger.learning import PatternLearner
from concierge.ledger.models import (
    LearnedPattern,
    LedgerDelta,
    LedgerEntry,
    PatternKey,
    PatternKind,
    PatternObservation,
    WarmupState,
)
from concierge.ledger.store import LedgerStore

__all__ = [
    "BudgetLedger",
    "InMemoryLedgerStore",
    "LearnedPattern",
    "LedgerDelta",
    "LedgerEntry",
    "LedgerStore",
    "PatternKey",
    "PatternKind",
    "PatternLearner",
    "PatternObservation",
    "Reservation",
    "TenantBudget",
    "WarmupState",
]
