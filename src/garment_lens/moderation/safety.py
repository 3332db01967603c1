"""Verdicts from the vision-language model's safety assessment and from outages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final

from .verdict import ModerationStatus, ModerationVerdict

VISION_SAFETY_CATEGORY: Final = "vision-safety"


@dataclass(frozen=True)
class SafetyAssessment:
    """The analyzer's own opinion on an image: ok, review or blocked, plus reasons."""

    status: ModerationStatus = ModerationStatus.OK
    reasons: list[str] = field(default_factory=list)


def verdict_from_safety(assessment: SafetyAssessment) -> ModerationVerdict:
    """Convert a safety assessment into a verdict in the vision-safety category."""
    status = ModerationStatus(assessment.status)
    if status is ModerationStatus.OK:
        return ModerationVerdict.ok()
    reasons = [r.strip() for r in assessment.reasons if r and r.strip()]
    if reasons:
        message = "; ".join(reasons)
    elif status is ModerationStatus.BLOCKED:
        message = "Item flagged by AI safety review."
    else:
        message = "AI suggests manual review."
    return ModerationVerdict(
        status=status,
        message=message,
        category=VISION_SAFETY_CATEGORY,
        reasons=frozenset(reasons),
    )


def unavailable_verdict(category: str, reason: str, message: str) -> ModerationVerdict:
    """Review verdict for a check that could not run; an outage is never treated as safe."""
    return ModerationVerdict(
        status=ModerationStatus.REVIEW,
        message=message,
        category=category,
        reasons=frozenset({reason}),
    )
