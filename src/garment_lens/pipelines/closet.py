"""Orchestrator for the closet photo pipeline.

Per detected garment: box normalization → crop → moderation fusion →
garment focusing → dominant-color extraction.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Protocol

from PIL import Image
from pydantic import BaseModel, ConfigDict, Field

from garment_lens.analysis.extract import ColorAlgorithm, analyze_colors
from garment_lens.detectors.vlm_output import GarmentAnalysis, NamedColor
from garment_lens.moderation.classifier import CLASSIFIER_CATEGORY, verdict_from_classifier
from garment_lens.moderation.safety import (
    VISION_SAFETY_CATEGORY,
    unavailable_verdict,
    verdict_from_safety,
)
from garment_lens.moderation.verdict import ModerationStatus, ModerationVerdict, fuse_verdicts
from garment_lens.vision.geometry import DEFAULT_PADDING_RATIO, FALLBACK_DETECTION, normalize_box
from garment_lens.vision.image import (
    ANALYSIS_MAX_SIDE,
    crop_with_bounds,
    img_to_png_bytes,
    resize_for_analysis,
    to_pixel_buffer,
)
from garment_lens.vision.labels import GarmentType, garment_type, match_garment_type
from garment_lens.vision.palette import color_name
from garment_lens.vision.types import Bounds, ColorSwatch, DetectionBox

LOG = logging.getLogger(__name__)

FALLBACK_WARNING = (
    "Garment detection could not isolate garments. Please review the single detected item manually."
)


class SupportsModerationClassifier(Protocol):
    """Protocol for a third-party nudity/violence/weapon classifier."""

    def check(self, image_png: bytes) -> Mapping[str, Any]:
        """Return the classifier's raw per-category scores for a PNG image."""
        ...


class SupportsGarmentAnalyzer(Protocol):
    """Protocol for a vision-language garment analyzer (description, type, safety)."""

    def analyze(self, img: Image.Image) -> GarmentAnalysis | None:
        """Analyze one garment crop; None when no analysis could be produced."""
        ...


@dataclass(frozen=True, slots=True, kw_only=True)
class ClosetConfig:
    """Pipeline parameters."""

    padding_ratio: float = DEFAULT_PADDING_RATIO
    color_algorithm: ColorAlgorithm = ColorAlgorithm.ENHANCED
    analysis_max_side: int = ANALYSIS_MAX_SIDE
    # A missing collaborator counts as an outage (review), not as a pass.
    require_safety_checks: bool = True
    verbose: bool = False


@dataclass(frozen=True)
class GarmentPiece:
    """Pipeline output for one detected garment."""

    label: str
    confidence: float
    garment_type: GarmentType
    bounds: Bounds
    moderation: ModerationVerdict
    swatches: list[ColorSwatch]
    color_names: list[str]
    description: str | None = None
    # Colors reported by the analyzer, kept apart from the pixel-derived swatches.
    ai_colors: list[NamedColor] = field(default_factory=list)
    warning: str | None = None

    @property
    def persistable(self) -> bool:
        """Blocked pieces must not be stored."""
        return not self.moderation.is_blocked

    @property
    def primary_hex(self) -> str | None:
        return self.swatches[0].hex if self.swatches else None


@dataclass(frozen=True)
class PhotoResult:
    """Pipeline output for one photograph."""

    image_w: int
    image_h: int
    pieces: list[GarmentPiece]
    warnings: list[str] = field(default_factory=list)


def _classifier_verdict(
    crop: Image.Image, classifier: SupportsModerationClassifier | None, cfg: ClosetConfig
) -> ModerationVerdict | None:
    if classifier is None:
        if not cfg.require_safety_checks:
            return None
        return unavailable_verdict(
            CLASSIFIER_CATEGORY,
            "moderation_not_configured",
            "Image moderation service not configured. Please verify manually.",
        )
    try:
        payload = classifier.check(img_to_png_bytes(crop))
        return verdict_from_classifier(payload)
    except Exception:
        LOG.warning("Moderation classifier check failed", exc_info=True)
        return unavailable_verdict(
            CLASSIFIER_CATEGORY,
            "moderation_unavailable",
            "Image moderation unavailable. Please verify manually.",
        )


def _analyze(
    crop: Image.Image, analyzer: SupportsGarmentAnalyzer | None, cfg: ClosetConfig
) -> tuple[GarmentAnalysis | None, ModerationVerdict | None]:
    if analyzer is None and not cfg.require_safety_checks:
        return None, None
    analysis: GarmentAnalysis | None = None
    if analyzer is not None:
        try:
            analysis = analyzer.analyze(crop)
        except Exception:
            LOG.warning("Garment analysis failed", exc_info=True)
    if analysis is None:
        return None, unavailable_verdict(
            VISION_SAFETY_CATEGORY,
            "analysis_unavailable",
            "Vision safety assessment unavailable. Please verify manually.",
        )
    return analysis, verdict_from_safety(analysis.safety)


def _warning(label: str, verdict: ModerationVerdict, *, source: str) -> str | None:
    """User-facing warning for a non-ok verdict of one check."""
    if verdict.status is ModerationStatus.OK:
        return None
    if verdict.is_blocked:
        return f'"{label}" blocked by {source}: {verdict.message}'
    return f'"{label}" needs manual review ({source}): {verdict.message}'


def process_piece(
    img: Image.Image,
    detection: DetectionBox,
    *,
    classifier: SupportsModerationClassifier | None = None,
    analyzer: SupportsGarmentAnalyzer | None = None,
    cfg: ClosetConfig = ClosetConfig(),
) -> GarmentPiece:
    """Run moderation and color analysis on one detected garment.

    Colors are computed whatever the moderation outcome; callers decide what
    to do with a blocked piece.
    """
    w, h = img.size
    bounds = normalize_box(detection, w, h, cfg.padding_ratio)
    crop = crop_with_bounds(img, bounds)

    classifier_verdict = _classifier_verdict(crop, classifier, cfg)
    analysis, safety_verdict = _analyze(crop, analyzer, cfg)
    checks = [
        (v, source)
        for v, source in ((classifier_verdict, "moderation"), (safety_verdict, "AI safety"))
        if v is not None
    ]
    moderation = fuse_verdicts(v for v, _ in checks)
    messages = [m for v, source in checks if (m := _warning(detection.label, v, source=source))]

    t0 = perf_counter()
    buffer = to_pixel_buffer(resize_for_analysis(crop, cfg.analysis_max_side))
    swatches = analyze_colors(buffer, cfg.color_algorithm)
    LOG.info(
        "Piece %r: bounds=%s moderation=%s colors=%s took=%.3fs",
        detection.label,
        bounds,
        moderation.status.value,
        [s.hex for s in swatches],
        perf_counter() - t0,
    )

    hint = analysis.suggested_type if analysis is not None else None
    # Analyzer type, then detector type, then the free-text label.
    resolved_type = match_garment_type(hint) or garment_type(detection.garment_type, detection.label)

    warning = "; ".join(messages) or None
    return GarmentPiece(
        label=detection.label,
        confidence=detection.confidence,
        garment_type=resolved_type,
        bounds=bounds,
        moderation=moderation,
        swatches=swatches,
        color_names=[color_name(s.hex) for s in swatches],
        description=analysis.description if analysis is not None else None,
        ai_colors=list(analysis.colors) if analysis is not None else [],
        warning=warning,
    )


def process_photo(
    img: Image.Image,
    detections: Sequence[DetectionBox],
    *,
    classifier: SupportsModerationClassifier | None = None,
    analyzer: SupportsGarmentAnalyzer | None = None,
    cfg: ClosetConfig = ClosetConfig(),
) -> PhotoResult:
    """Run the pipeline over every detected garment of a photograph.

    With no detections, a single fallback box covering nearly the whole image
    is analyzed and a warning is added.
    """
    if cfg.verbose:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")

    rgba = img.convert("RGBA")
    w, h = rgba.size
    warnings: list[str] = []
    if not detections:
        LOG.info("No garment detected; using the fallback box")
        warnings.append(FALLBACK_WARNING)
        detections = [FALLBACK_DETECTION]

    t0 = perf_counter()
    pieces: list[GarmentPiece] = []
    for det in detections:
        piece = process_piece(rgba, det, classifier=classifier, analyzer=analyzer, cfg=cfg)
        if piece.warning:
            warnings.append(piece.warning)
        pieces.append(piece)
    LOG.info(
        "Photo %sx%s: pieces=%s blocked=%s took=%.2fs",
        w,
        h,
        len(pieces),
        sum(1 for p in pieces if not p.persistable),
        perf_counter() - t0,
    )
    return PhotoResult(image_w=w, image_h=h, pieces=pieces, warnings=warnings)


class _SwatchJson(BaseModel):
    model_config = ConfigDict(extra="ignore")

    hex: str
    weight: float
    name: str


class _VerdictJson(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: str
    message: str | None = None
    category: str | None = None
    reasons: list[str] = Field(default_factory=list)


class _PieceJson(BaseModel):
    model_config = ConfigDict(extra="ignore")

    label: str
    confidence: float
    garment_type: str
    bounding_box: dict[str, int]
    moderation: _VerdictJson
    persistable: bool
    primary_hex: str | None = None
    colors: list[_SwatchJson] = Field(default_factory=list)
    ai_colors: list[dict[str, str]] = Field(default_factory=list)
    description: str | None = None
    warning: str | None = None


class _PhotoJson(BaseModel):
    model_config = ConfigDict(extra="ignore")

    image: str | None = None
    image_w: int
    image_h: int
    pieces: list[_PieceJson]
    warnings: list[str] = Field(default_factory=list)


def result_to_json(result: PhotoResult, *, image: str | None = None) -> str:
    """Serialize a :class:`PhotoResult` for the application layer."""
    out = _PhotoJson(
        image=image,
        image_w=result.image_w,
        image_h=result.image_h,
        pieces=[
            _PieceJson(
                label=p.label,
                confidence=p.confidence,
                garment_type=p.garment_type,
                bounding_box={
                    "left": p.bounds.x,
                    "top": p.bounds.y,
                    "width": p.bounds.width,
                    "height": p.bounds.height,
                },
                moderation=_VerdictJson(
                    status=p.moderation.status.value,
                    message=p.moderation.message,
                    category=p.moderation.category,
                    reasons=p.moderation.sorted_reasons(),
                ),
                persistable=p.persistable,
                primary_hex=p.primary_hex,
                colors=[
                    _SwatchJson(hex=s.hex, weight=round(s.weight, 2), name=n)
                    for s, n in zip(p.swatches, p.color_names, strict=True)
                ],
                ai_colors=[{"name": c.name, "hex": c.hex} for c in p.ai_colors],
                description=p.description,
                warning=p.warning,
            )
            for p in result.pieces
        ],
        warnings=list(result.warnings),
    )
    return out.model_dump_json(indent=2)
