"""
Matching rules for the reconciliation engine.
"""

from .amount_date_rules import (
    AmountDateMatchingRules,
    MatchingConfig,
    MatchCandidate,
    NOTE_EXACT,
    NOTE_UNMATCHED,
)

__all__ = [
    "AmountDateMatchingRules",
    "MatchingConfig",
    "MatchCandidate",
    "NOTE_EXACT",
    "NOTE_UNMATCHED",
]
