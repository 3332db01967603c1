from __future__ import annotations

import importlib.util
import json
from collections.abc import Mapping
from pathlib import Path
from types import ModuleType
from typing import Any

import pytest
import yaml
from PIL import Image

from garment_lens.detectors.vlm_output import GarmentAnalysis, NamedColor, parse_detections
from garment_lens.moderation.safety import SafetyAssessment
from garment_lens.moderation.verdict import ModerationStatus
from garment_lens.pipelines.closet import (
    FALLBACK_WARNING,
    ClosetConfig,
    process_photo,
    result_to_json,
)
from garment_lens.vision.types import Bounds, DetectionBox

BLUE = (20, 40, 160, 255)
JEANS = DetectionBox(x=0.3, y=0.25, width=0.4, height=0.6, label="Blue jeans", confidence=0.9)


class _FakeClassifier:
    def __init__(self, payload: Mapping[str, Any] | None = None, error: Exception | None = None):
        self.payload = payload or {"status": "success"}
        self.error = error
        self.calls: list[bytes] = []

    def check(self, image_png: bytes) -> Mapping[str, Any]:
        self.calls.append(image_png)
        if self.error is not None:
            raise self.error
        return self.payload


class _FakeAnalyzer:
    def __init__(self, analysis: GarmentAnalysis | None):
        self.analysis = analysis
        self.sizes: list[tuple[int, int]] = []

    def analyze(self, img: Image.Image) -> GarmentAnalysis | None:
        self.sizes.append(img.size)
        return self.analysis


def _photo() -> Image.Image:
    img = Image.new("RGBA", (200, 200), color=(255, 255, 255, 255))
    img.paste(BLUE, (60, 50, 140, 170))
    return img


def _ok_analysis(**kwargs: Any) -> GarmentAnalysis:
    return GarmentAnalysis(description="Straight-leg jeans", **kwargs)


def test_clean_piece_gets_colors_and_type() -> None:
    classifier = _FakeClassifier()
    analyzer = _FakeAnalyzer(_ok_analysis())
    result = process_photo(_photo(), [JEANS], classifier=classifier, analyzer=analyzer)

    assert (result.image_w, result.image_h) == (200, 200)
    assert result.warnings == []
    (piece,) = result.pieces
    assert piece.bounds == Bounds(x=54, y=40, width=92, height=140)
    assert analyzer.sizes == [(92, 140)]
    assert len(classifier.calls) == 1
    assert piece.moderation.status is ModerationStatus.OK
    assert piece.persistable
    assert piece.garment_type == "bottom"
    assert piece.primary_hex == "#1028A0"
    assert piece.color_names == ["Navy"]
    assert piece.description == "Straight-leg jeans"
    assert piece.warning is None


def test_blocked_piece_still_reports_colors() -> None:
    classifier = _FakeClassifier({"weapon": {"prob": 0.93}})
    result = process_photo(_photo(), [JEANS], classifier=classifier, analyzer=_FakeAnalyzer(_ok_analysis()))
    (piece,) = result.pieces
    assert piece.moderation.status is ModerationStatus.BLOCKED
    assert piece.moderation.category == "weapon"
    assert not piece.persistable
    assert piece.primary_hex == "#1028A0"
    assert piece.warning is not None and "blocked" in piece.warning
    assert result.warnings == [piece.warning]


def test_classifier_outage_and_ai_block_are_fused() -> None:
    analysis = _ok_analysis(
        suggested_type="skirt",
        safety=SafetyAssessment(status=ModerationStatus.BLOCKED, reasons=["explicit print"]),
    )
    result = process_photo(
        _photo(),
        [JEANS],
        classifier=_FakeClassifier(error=TimeoutError("classifier timed out")),
        analyzer=_FakeAnalyzer(analysis),
    )
    (piece,) = result.pieces
    assert piece.moderation.status is ModerationStatus.BLOCKED
    assert piece.moderation.category == "vision-safety"
    assert piece.moderation.reasons == {"moderation_unavailable", "explicit print"}
    assert piece.garment_type == "bottom"


@pytest.mark.parametrize(
    ("suggested", "expected"),
    [(None, "bottom"), ("unknown thing", "bottom"), ("boots", "footwear")],
)
def test_garment_type_prefers_analyzer_then_detector_type(suggested: str | None, expected: str) -> None:
    det = DetectionBox(x=0.3, y=0.25, width=0.4, height=0.6, label="Item 1", garment_type="bottom")
    result = process_photo(
        _photo(),
        [det],
        classifier=_FakeClassifier(),
        analyzer=_FakeAnalyzer(_ok_analysis(suggested_type=suggested)),
    )
    assert result.pieces[0].garment_type == expected


def test_detector_type_from_parsed_output_reaches_piece() -> None:
    text = json.dumps(
        {
            "garments": [
                {
                    "label": "Item 1",
                    "garmentType": "bottom",
                    "boundingBox": {"x": 0.3, "y": 0.25, "width": 0.4, "height": 0.6},
                }
            ]
        }
    )
    result = process_photo(_photo(), parse_detections(text), cfg=ClosetConfig(require_safety_checks=False))
    assert result.pieces[0].garment_type == "bottom"


def test_analyzer_colors_are_reported_in_json() -> None:
    analysis = _ok_analysis(colors=[NamedColor(name="Indigo", hex="#2B2F77")])
    result = process_photo(_photo(), [JEANS], classifier=_FakeClassifier(), analyzer=_FakeAnalyzer(analysis))
    assert result.pieces[0].ai_colors == [NamedColor(name="Indigo", hex="#2B2F77")]
    data = json.loads(result_to_json(result))
    assert data["pieces"][0]["ai_colors"] == [{"name": "Indigo", "hex": "#2B2F77"}]
    assert data["pieces"][0]["colors"][0]["hex"] == "#1028A0"


def test_missing_analysis_needs_review() -> None:
    result = process_photo(_photo(), [JEANS], classifier=_FakeClassifier(), analyzer=_FakeAnalyzer(None))
    (piece,) = result.pieces
    assert piece.moderation.status is ModerationStatus.REVIEW
    assert piece.moderation.reasons == {"analysis_unavailable"}
    assert piece.persistable


def test_unconfigured_checks_fail_closed_by_default() -> None:
    (piece,) = process_photo(_photo(), [JEANS]).pieces
    assert piece.moderation.status is ModerationStatus.REVIEW
    assert piece.moderation.reasons == {"moderation_not_configured", "analysis_unavailable"}


def test_checks_can_be_disabled() -> None:
    cfg = ClosetConfig(require_safety_checks=False, color_algorithm="legacy")
    result = process_photo(_photo(), [JEANS], cfg=cfg)
    (piece,) = result.pieces
    assert piece.moderation.status is ModerationStatus.OK
    assert result.warnings == []
    assert piece.swatches[0].hex == "#1428A0"


def test_no_detection_uses_fallback_box() -> None:
    cfg = ClosetConfig(require_safety_checks=False)
    result = process_photo(_photo(), [], cfg=cfg)
    assert result.warnings == [FALLBACK_WARNING]
    (piece,) = result.pieces
    assert piece.label == "Garment"
    assert piece.bounds == Bounds(x=0, y=0, width=200, height=200)
    assert piece.primary_hex == "#1028A0"


def test_result_to_json() -> None:
    result = process_photo(_photo(), [JEANS], cfg=ClosetConfig(require_safety_checks=False))
    data = json.loads(result_to_json(result, image="photo.png"))
    assert data["image"] == "photo.png"
    piece = data["pieces"][0]
    assert piece["bounding_box"] == {"left": 54, "top": 40, "width": 92, "height": 140}
    assert piece["moderation"]["status"] == "ok"
    assert piece["persistable"] is True
    assert piece["colors"][0]["hex"] == "#1028A0"


def _load_script() -> ModuleType:
    path = Path(__file__).resolve().parents[1] / "scripts" / "closet_pipeline.py"
    spec = importlib.util.spec_from_file_location("closet_pipeline_script", path)
    assert spec is not None and spec.loader is not None
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)
    return mod


def test_batch_script_writes_results_and_summary(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    images = tmp_path / "images"
    images.mkdir()
    _photo().save(images / "look1.png")
    (images / "look1.detections.json").write_text(
        json.dumps(
            {
                "garments": [
                    {
                        "label": "Blue jeans",
                        "confidence": 0.9,
                        "boundingBox": {"x": 0.3, "y": 0.25, "width": 0.4, "height": 0.6},
                    }
                ]
            }
        ),
        encoding="utf-8",
    )
    (images / "look1.moderation.json").write_text(json.dumps({"gore": 0.7}), encoding="utf-8")
    (images / "look1.analysis.json").write_text(json.dumps({"safety": {"status": "ok"}}), encoding="utf-8")
    monkeypatch.setenv("COLOR_ALGORITHM", "enhanced")

    out = tmp_path / "out"
    script = _load_script()
    assert script.main(["--images_dir", str(images), "--out_root", str(out)]) == 0

    data = json.loads((out / "look1.json").read_text(encoding="utf-8"))
    assert data["pieces"][0]["moderation"]["status"] == "blocked"
    summary = yaml.safe_load((out / "summary.yaml").read_text(encoding="utf-8"))
    piece = summary["images"]["look1.png"]["pieces"][0]
    assert piece["garment_type"] == "bottom"
    assert piece["moderation"] == "blocked"
    assert piece["colors"][0] == "#1028A0"


def test_batch_script_rejects_bad_algorithm(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COLOR_ALGORITHM", "kmeans")
    script = _load_script()
    with pytest.raises(SystemExit):
        script.main(["--images_dir", str(tmp_path), "--out_root", str(tmp_path / "out")])
