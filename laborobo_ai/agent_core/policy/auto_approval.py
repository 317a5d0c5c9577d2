from __future__ import annotations

"""Confidence-based auto-approval of PM Copilot suggestions.

A suggestion (a deliverable alternative, or any dict shaped like one) may skip
human review when:

1. it has no budget impact (``has_budget_impact`` is true or ``budget_cost`` is
   positive), and
2. its confidence score meets the team's
   ``pm_copilot_auto_approval_threshold``.

An explicit numeric ``confidence_score`` wins; otherwise the ``confidence``
level is mapped through ``CONFIDENCE_SCORES`` with ``medium`` as the default.
Teams without a ``GlobalAISettings`` row never auto-approve.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..repos.interfaces import GlobalAISettingsRepository
from ..schemas.domain import GlobalAISettings

logger = logging.getLogger(__name__)

CONFIDENCE_SCORES: Dict[str, float] = {
    "high": 0.9,
    "medium": 0.7,
    "low": 0.5,
}
DEFAULT_CONFIDENCE = "medium"


def confidence_to_score(confidence: Any) -> float:
    """Map a confidence level to its default score; unknown levels score as ``medium``."""
    level = getattr(confidence, "value", confidence)
    if not isinstance(level, str):
        return CONFIDENCE_SCORES[DEFAULT_CONFIDENCE]
    return CONFIDENCE_SCORES.get(level.lower(), CONFIDENCE_SCORES[DEFAULT_CONFIDENCE])


def confidence_score(suggestion: Mapping[str, Any]) -> float:
    explicit = suggestion.get("confidence_score")
    if isinstance(explicit, (int, float)) and not isinstance(explicit, bool):
        return float(explicit)
    return confidence_to_score(suggestion.get("confidence") or DEFAULT_CONFIDENCE)


def has_budget_impact(suggestion: Mapping[str, Any]) -> bool:
    if suggestion.get("has_budget_impact") is True:
        return True
    cost = suggestion.get("budget_cost")
    try:
        return cost is not None and float(cost) > 0
    except (TypeError, ValueError):
        return False


class AutoApprovalPolicy:
    """Decide which PM Copilot suggestions a team lets through without review."""

    def __init__(self, settings: GlobalAISettingsRepository) -> None:
        self._settings = settings

    @staticmethod
    def should_auto_approve(suggestion: Mapping[str, Any], settings: GlobalAISettings) -> bool:
        if has_budget_impact(suggestion):
            return False
        return settings.meets_auto_approval_threshold(confidence_score(suggestion))

    @classmethod
    def evaluate_suggestions(cls, suggestions: List[Mapping[str, Any]], settings: GlobalAISettings) -> List[bool]:
        """One decision per suggestion, in order."""
        return [cls.should_auto_approve(s, settings) for s in suggestions]

    async def select(self, team_id: str, suggestions: List[Dict[str, Any]]) -> Optional[Tuple[int, float, float]]:
        """
        Pick the suggestion to approve without review.

        Returns:
            ``(index, score, threshold)`` of the highest-scoring approvable
            suggestion (the first one on ties), or ``None`` when a human has to
            decide.
        """
        settings = await self._settings.get(team_id)
        if settings is None:
            logger.debug(f"No global AI settings for team {team_id}; auto-approval disabled")
            return None

        best: Optional[Tuple[int, float]] = None
        for index, approvable in enumerate(self.evaluate_suggestions(suggestions, settings)):
            if not approvable:
                continue
            score = confidence_score(suggestions[index])
            if best is None or score > best[1]:
                best = (index, score)
        if best is None:
            return None
        return best[0], best[1], settings.pm_copilot_auto_approval_threshold
