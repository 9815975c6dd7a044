"""
Commitment Pattern Analyzer — spots users who always commit to the minimum.

Committing to the shortest allowed duration makes the surplus cap trivially
easy to clear. This module measures how often that happens; it only reports
and never touches the ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from commitledger.data.models import Session

logger = logging.getLogger(__name__)

MIN_COMMITMENT_SECONDS = 1800       # 30 minutes
LOW_COMMITMENT_RATIO = 0.7
MIN_PATTERN_SAMPLE = 10


@dataclass(frozen=True)
class CommitmentPattern:
    average_commitment: float = 0
    minimum_commitment_ratio: float = 0
    has_low_commitment_pattern: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "averageCommitment": self.average_commitment,
            "minimumCommitmentRatio": self.minimum_commitment_ratio,
            "hasLowCommitmentPattern": self.has_low_commitment_pattern,
        }


def analyze_commitment_patterns(sessions: Iterable[Session]) -> CommitmentPattern:
    """Share of committed sessions logged at exactly the minimum commitment."""
    targets = [s.target_duration_seconds for s in sessions if s.has_target]
    if not targets:
        return CommitmentPattern()

    at_minimum = sum(1 for t in targets if t == MIN_COMMITMENT_SECONDS)
    ratio = at_minimum / len(targets)
    flagged = ratio > LOW_COMMITMENT_RATIO and len(targets) >= MIN_PATTERN_SAMPLE
    if flagged:
        logger.info(
            "Low-commitment pattern: %d/%d sessions at minimum commitment.",
            at_minimum, len(targets),
        )
    return CommitmentPattern(
        average_commitment=sum(targets) / len(targets),
        minimum_commitment_ratio=ratio,
        has_low_commitment_pattern=flagged,
    )


def commitment_nudge(pattern: CommitmentPattern) -> Optional[str]:
    """Advisory text for the dashboard, or None when there is nothing to say."""
    if not pattern.has_low_commitment_pattern:
        return None
    pct = round(pattern.minimum_commitment_ratio * 100)
    minutes = MIN_COMMITMENT_SECONDS // 60
    return (
        f"{pct}% of your recent commitments were the {minutes}-minute minimum. "
        "Try committing to the time you actually plan to work."
    )
