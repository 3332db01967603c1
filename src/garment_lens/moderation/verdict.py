"""Moderation verdicts and their severity-ordered fusion."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from functools import reduce


class ModerationStatus(StrEnum):
    """Outcome of a safety check."""

    OK = "ok"
    REVIEW = "review"
    BLOCKED = "blocked"
    ERROR = "error"

    def severity(self) -> int:
        """Total order used for fusion: ok < review == error < blocked."""
        return _SEVERITY[self]


_SEVERITY: dict[ModerationStatus, int] = {
    ModerationStatus.OK: 0,
    ModerationStatus.REVIEW: 1,
    ModerationStatus.ERROR: 1,
    ModerationStatus.BLOCKED: 2,
}


@dataclass(frozen=True)
class ModerationVerdict:
    """A single safety verdict.

    Attributes:
        status: Verdict status.
        message: Human-readable explanation, if any.
        category: Check or content category that produced the verdict.
        reasons: Evidence strings (e.g. "nudity.raw:72.0%").
    """

    status: ModerationStatus = ModerationStatus.OK
    message: str | None = None
    category: str | None = None
    reasons: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        # Accept plain strings / lists from callers; store canonical types.
        object.__setattr__(self, "status", ModerationStatus(self.status))
        object.__setattr__(self, "reasons", frozenset(r for r in self.reasons if r))

    @classmethod
    def ok(cls) -> ModerationVerdict:
        return cls()

    @property
    def severity(self) -> int:
        return self.status.severity()

    @property
    def is_blocked(self) -> bool:
        return self.status is ModerationStatus.BLOCKED

    def sorted_reasons(self) -> list[str]:
        return sorted(self.reasons)


def merge_verdicts(current: ModerationVerdict, candidate: ModerationVerdict) -> ModerationVerdict:
    """Fold `candidate` into `current`.

    An ok candidate changes nothing. Otherwise the more severe side decides
    status and category (ties keep `current`), the message and category fall
    back to the other side when missing, and reasons are always unioned.
    """
    if candidate.status is ModerationStatus.OK:
        return current
    reasons = current.reasons | candidate.reasons
    if candidate.severity > current.severity:
        return ModerationVerdict(
            status=candidate.status,
            message=candidate.message if candidate.message is not None else current.message,
            category=candidate.category if candidate.category is not None else current.category,
            reasons=reasons,
        )
    return ModerationVerdict(
        status=current.status,
        message=current.message if current.message is not None else candidate.message,
        category=current.category if current.category is not None else candidate.category,
        reasons=reasons,
    )


def fuse_verdicts(verdicts: Iterable[ModerationVerdict]) -> ModerationVerdict:
    """Left fold of :func:`merge_verdicts`, seeded with an ok verdict."""
    return reduce(merge_verdicts, verdicts, ModerationVerdict.ok())
