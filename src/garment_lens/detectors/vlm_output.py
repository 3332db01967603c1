"""Parsing of vision-language model output (garment detections, garment analysis).

The model itself is an external collaborator; this module only turns its
(possibly noisy) JSON text into pipeline types.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from garment_lens.moderation.safety import SafetyAssessment
from garment_lens.moderation.verdict import ModerationStatus
from garment_lens.vision.palette import color_name
from garment_lens.vision.types import DetectionBox

LOG = logging.getLogger(__name__)

_HEX_RE = re.compile(r"^#[0-9A-F]{6}$")


@dataclass(frozen=True)
class NamedColor:
    """A color reported by the analyzer."""

    name: str
    hex: str


@dataclass(frozen=True)
class GarmentAnalysis:
    """Analyzer output for one garment crop."""

    description: str | None = None
    suggested_type: str | None = None
    colors: list[NamedColor] = field(default_factory=list)
    safety: SafetyAssessment = field(default_factory=SafetyAssessment)


class _JsonBox(BaseModel):
    model_config = ConfigDict(extra="ignore")

    x: float = 0.0
    y: float = 0.0
    width: float = 1.0
    height: float = 1.0


class _JsonGarment(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    label: str = "Garment"
    garment_type: str | None = Field(default=None, alias="garmentType")
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    box: _JsonBox = Field(alias="boundingBox")

    @field_validator("label", mode="before")
    @classmethod
    def _strip_label(cls, v: Any) -> str:
        s = "" if v is None else str(v).strip()
        return s or "Garment"

    @field_validator("confidence", mode="before")
    @classmethod
    def _clip_confidence(cls, v: Any) -> float:
        try:
            c = float(v)
        except (TypeError, ValueError):
            return 0.5
        return min(1.0, max(0.0, c))


class _JsonDetections(BaseModel):
    model_config = ConfigDict(extra="ignore")

    garments: list[_JsonGarment] = Field(default_factory=list)

    @field_validator("garments", mode="before")
    @classmethod
    def _coerce_garments(cls, v: Any) -> list[Any]:
        if v is None:
            return []
        if isinstance(v, list):
            return v
        # Some models may return a single object.
        if isinstance(v, dict):
            return [v]
        return []


class _JsonColor(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    hex: str | None = None


class _JsonSafety(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: ModerationStatus = ModerationStatus.REVIEW
    reasons: list[str] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, v: Any) -> str:
        s = str(v or "").strip().lower()
        # Anything unrecognized is routed to a human.
        return s if s in {"ok", "review", "blocked"} else "review"

    @field_validator("reasons", mode="before")
    @classmethod
    def _coerce_reasons(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        if isinstance(v, list):
            return [str(s) for s in v]
        return []


class _JsonAnalysis(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    description: str | None = None
    suggested_type: str | None = Field(default=None, alias="suggestedType")
    colors: list[_JsonColor] = Field(default_factory=list)
    safety: _JsonSafety = Field(default_factory=_JsonSafety)


def extract_json(text: str) -> str:
    """Extract a JSON object from a possibly noisy model response."""
    if not text:
        return text
    # Common case: fenced JSON block
    if "```" in text:
        parts = text.split("```")
        for i in range(1, len(parts), 2):
            body = parts[i].strip()
            if body.lower().startswith("json"):
                body = body[4:].strip()
            if body.startswith("{") and body.endswith("}"):
                return body
    try:
        json.loads(text)
    except json.JSONDecodeError:
        pass
    else:
        return text
    i = text.find("{")
    j = text.rfind("}")
    if i != -1 and j > i:
        cand = text[i : j + 1]
        try:
            json.loads(cand)
        except json.JSONDecodeError:
            return text
        else:
            return cand
    return text


def normalize_hex(value: str) -> str:
    """Uppercase and `#`-prefix a hex string; empty input maps to black."""
    trimmed = value.strip()
    if not trimmed:
        return "#000000"
    return (trimmed if trimmed.startswith("#") else f"#{trimmed}").upper()


def parse_detections(text: str) -> list[DetectionBox]:
    """Parse `{"garments": [{label, garmentType, confidence, boundingBox}]}` output."""
    try:
        parsed = _JsonDetections.model_validate_json(extract_json(text))
    except ValidationError as e:
        raise RuntimeError("Detector output does not match expected JSON schema.") from e
    boxes = [
        DetectionBox(
            x=g.box.x,
            y=g.box.y,
            width=g.box.width,
            height=g.box.height,
            label=g.label,
            confidence=g.confidence,
            garment_type=g.garment_type,
        )
        for g in parsed.garments
    ]
    LOG.info("Parsed %s garment detections", len(boxes))
    return boxes


def parse_garment_analysis(text: str) -> GarmentAnalysis:
    """Parse the analyzer's description/type/colors/safety output.

    Colors with malformed hex values are dropped, and duplicates keep their
    first occurrence.
    """
    try:
        parsed = _JsonAnalysis.model_validate_json(extract_json(text))
    except ValidationError as e:
        raise RuntimeError("Analyzer output does not match expected JSON schema.") from e

    seen: set[str] = set()
    colors: list[NamedColor] = []
    for c in parsed.colors:
        hx = normalize_hex(c.hex or "")
        if not _HEX_RE.match(hx) or hx in seen:
            continue
        seen.add(hx)
        colors.append(NamedColor(name=(c.name or "").strip() or color_name(hx), hex=hx))

    return GarmentAnalysis(
        description=parsed.description,
        suggested_type=parsed.suggested_type,
        colors=colors,
        safety=SafetyAssessment(status=parsed.safety.status, reasons=list(parsed.safety.reasons)),
    )
