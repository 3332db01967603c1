"""Thresholding of the third-party moderation classifier's scores into a verdict."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .verdict import ModerationStatus, ModerationVerdict

LOG = logging.getLogger(__name__)

CLASSIFIER_CATEGORY: Final = "classifier"

_MSG_NUDITY = "Image blocked for inappropriate content. Please choose another."
_MSG_VERY_SUGGESTIVE = "This photo seems very suggestive. Please choose a more appropriate image."
_MSG_SUGGESTIVE = "This photo seems too suggestive. Please choose a different image."


@dataclass(frozen=True, slots=True, kw_only=True)
class _Rule:
    label: str
    threshold: float
    message: str
    category: str


# Order matters: the first triggered rule supplies the message and category.
RULES: Final[tuple[_Rule, ...]] = (
    _Rule(label="nudity.raw", threshold=0.6, message=_MSG_NUDITY, category="nudity"),
    _Rule(label="nudity.erotica", threshold=0.6, message=_MSG_NUDITY, category="nudity"),
    _Rule(
        label="nudity.very_suggestive",
        threshold=0.9,
        message=_MSG_VERY_SUGGESTIVE,
        category="suggestive",
    ),
    _Rule(label="nudity.suggestive", threshold=0.99, message=_MSG_SUGGESTIVE, category="suggestive"),
    _Rule(
        label="nudity.mildly_suggestive",
        threshold=0.99,
        message=_MSG_SUGGESTIVE,
        category="suggestive",
    ),
    _Rule(
        label="gore",
        threshold=0.5,
        message="Image blocked due to gore. Please select a safe photo.",
        category="gore",
    ),
    _Rule(
        label="violence",
        threshold=0.5,
        message="Image blocked due to violence. Please select a safe photo.",
        category="violence",
    ),
    _Rule(
        label="weapon",
        threshold=0.5,
        message="Image blocked due to weapon detection. Please select a safe photo.",
        category="weapon",
    ),
)


def _prob(value: Any) -> float:
    """Read a probability from a bare number or an object carrying prob/probability/value."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, Mapping):
        nested = next(
            (value[k] for k in ("prob", "probability", "value") if value.get(k) is not None),
            None,
        )
        if isinstance(nested, int | float) and not isinstance(nested, bool):
            return float(nested)
    return 0.0


class _Nudity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    raw: float = 0.0
    erotica: float = 0.0
    very_suggestive: float = 0.0
    suggestive: float = 0.0
    mildly_suggestive: float = 0.0

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_prob(cls, v: Any) -> float:
        return _prob(v)


class _ClassifierPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: str | None = None
    nudity: _Nudity = Field(default_factory=_Nudity)
    gore: float = 0.0
    violence: float = 0.0
    weapon: float = 0.0

    @field_validator("nudity", mode="before")
    @classmethod
    def _coerce_nudity(cls, v: Any) -> Any:
        return v if isinstance(v, Mapping) else {}

    @field_validator("gore", "violence", "weapon", mode="before")
    @classmethod
    def _coerce_prob(cls, v: Any) -> float:
        return _prob(v)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, v: Any) -> str | None:
        return None if v is None else str(v)

    def scores(self) -> dict[str, float]:
        return {
            "nudity.raw": self.nudity.raw,
            "nudity.erotica": self.nudity.erotica,
            "nudity.very_suggestive": self.nudity.very_suggestive,
            "nudity.suggestive": self.nudity.suggestive,
            "nudity.mildly_suggestive": self.nudity.mildly_suggestive,
            "gore": self.gore,
            "violence": self.violence,
            "weapon": self.weapon,
        }


def verdict_from_classifier(payload: Mapping[str, Any]) -> ModerationVerdict:
    """Convert a classifier response into a verdict.

    Any triggered threshold blocks the image; the first triggered rule supplies
    the message and category, and every trigger is listed as a reason
    ("<label>:<percent>%"). A response reporting failure yields a review
    verdict so that the image is never treated as safe.
    """
    try:
        parsed = _ClassifierPayload.model_validate(dict(payload))
    except ValidationError as e:  # pragma: no cover
        raise RuntimeError("Classifier response does not match the expected shape.") from e

    if parsed.status == "failure":
        LOG.warning("Moderation classifier reported failure: %s", dict(payload))
        return ModerationVerdict(
            status=ModerationStatus.REVIEW,
            message="Image moderation failed. Please try again.",
            category=CLASSIFIER_CATEGORY,
            reasons=frozenset({"moderation_failed"}),
        )

    scores = parsed.scores()
    triggered = [rule for rule in RULES if scores[rule.label] >= rule.threshold]
    if not triggered:
        return ModerationVerdict.ok()

    reasons = frozenset(f"{rule.label}:{scores[rule.label] * 100:.1f}%" for rule in triggered)
    primary = triggered[0]
    LOG.warning("Image rejected by classifier: category=%s reasons=%s", primary.category, sorted(reasons))
    return ModerationVerdict(
        status=ModerationStatus.BLOCKED,
        message=primary.message,
        category=primary.category,
        reasons=reasons,
    )
