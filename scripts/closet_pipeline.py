#!/usr/bin/env python3
"""Batch runner for the garment_lens closet pipeline.

Runs on every JPG/PNG under `--images_dir` and writes
`<out_root>/<image_stem>.json` plus `<out_root>/summary.yaml`.

Upstream collaborator outputs are read from `--inputs_dir` when present:
- `<stem>.detections.json`: raw detector output (`{"garments": [...]}`).
- `<stem>.moderation.json`: raw classifier scores.
- `<stem>.analysis.json`: raw analyzer output (description/type/colors/safety).
A missing detections file means "nothing detected" (fallback box). Missing
moderation/analysis files are treated as outages unless `REQUIRE_SAFETY_CHECKS=0`.

Tuning via environment variables:
- `COLOR_ALGORITHM` (default: "enhanced"; or "legacy")
- `PADDING_RATIO` (default: 0.08)
- `ANALYSIS_MAX_SIDE` (default: 256)
- `REQUIRE_SAFETY_CHECKS` (default: 1)
"""

import argparse
import json
import os
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from garment_lens.analysis.extract import ColorAlgorithm
from garment_lens.detectors.vlm_output import (
    GarmentAnalysis,
    parse_detections,
    parse_garment_analysis,
)
from garment_lens.pipelines.closet import ClosetConfig, process_photo, result_to_json
from garment_lens.vision.image import ensure_dir, read_image


class _StoredClassifier:
    """Replays a classifier response saved next to the photo."""

    def __init__(self, payload: Mapping[str, Any]):
        self._payload = payload

    def check(self, image_png: bytes) -> Mapping[str, Any]:
        _ = image_png
        return self._payload


class _StoredAnalyzer:
    """Replays an analyzer response saved next to the photo."""

    def __init__(self, analysis: GarmentAnalysis):
        self._analysis = analysis

    def analyze(self, img: Any) -> GarmentAnalysis:
        _ = img
        return self._analysis


def _iter_images(images_dir: Path) -> list[Path]:
    exts = {".jpg", ".jpeg", ".png"}
    return sorted(p for p in images_dir.iterdir() if p.is_file() and p.suffix.lower() in exts)


def _yaml_dump(data: object) -> str:
    dumped = yaml.safe_dump(data, sort_keys=False)
    if dumped is None:
        return ""
    if isinstance(dumped, bytes):
        return dumped.decode("utf-8")
    return dumped


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "no", "n", "off"}:
        return False
    raise SystemExit(f"Invalid {name}={raw!r}; expected 0/1/true/false.")


def _config_from_env(verbose: bool) -> ClosetConfig:
    algo = os.environ.get("COLOR_ALGORITHM", "enhanced").strip().lower()
    try:
        algorithm = ColorAlgorithm(algo)
    except ValueError:
        raise SystemExit(f"Invalid COLOR_ALGORITHM={algo!r}; expected 'enhanced' or 'legacy'.") from None
    return ClosetConfig(
        padding_ratio=float(os.environ.get("PADDING_RATIO", "0.08")),
        color_algorithm=algorithm,
        analysis_max_side=int(os.environ.get("ANALYSIS_MAX_SIDE", "256")),
        require_safety_checks=_env_bool("REQUIRE_SAFETY_CHECKS", True),
        verbose=verbose,
    )


def main(argv: list[str]) -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--images_dir", type=str, default="assets/images")
    ap.add_argument("--inputs_dir", type=str, default=None)
    ap.add_argument("--out_root", type=str, default="outputs/closet_pipeline")
    ap.add_argument("--overwrite", action="store_true")
    ap.add_argument("--verbose", action="store_true")
    args = ap.parse_args(argv)

    images_dir = Path(args.images_dir).expanduser().resolve()
    if not images_dir.is_dir():
        raise SystemExit(f"--images_dir is not a directory: {images_dir}")
    inputs_dir = Path(args.inputs_dir).expanduser().resolve() if args.inputs_dir else images_dir

    out_root = Path(args.out_root).expanduser().resolve()
    ensure_dir(out_root)
    cfg = _config_from_env(verbose=bool(args.verbose))

    summary: dict[str, Any] = {"images": {}}
    for image_path in _iter_images(images_dir):
        out_json = out_root / f"{image_path.stem}.json"
        if out_json.exists() and not args.overwrite:
            print(f"[skip] {image_path.name} (exists: {out_json})")
            continue

        det_file = inputs_dir / f"{image_path.stem}.detections.json"
        mod_file = inputs_dir / f"{image_path.stem}.moderation.json"
        ana_file = inputs_dir / f"{image_path.stem}.analysis.json"

        detections = parse_detections(det_file.read_text(encoding="utf-8")) if det_file.is_file() else []
        classifier = (
            _StoredClassifier(json.loads(mod_file.read_text(encoding="utf-8")))
            if mod_file.is_file()
            else None
        )
        analyzer = (
            _StoredAnalyzer(parse_garment_analysis(ana_file.read_text(encoding="utf-8")))
            if ana_file.is_file()
            else None
        )

        print(f"[run] {image_path.name}")
        result = process_photo(
            read_image(image_path),
            detections,
            classifier=classifier,
            analyzer=analyzer,
            cfg=cfg,
        )
        out_json.write_text(result_to_json(result, image=str(image_path)), encoding="utf-8")

        summary["images"][image_path.name] = {
            "pieces": [
                {
                    "label": p.label,
                    "garment_type": p.garment_type,
                    "moderation": p.moderation.status.value,
                    "colors": [s.hex for s in p.swatches],
                }
                for p in result.pieces
            ],
            "warnings": list(result.warnings),
        }

    (out_root / "summary.yaml").write_text(_yaml_dump(summary), encoding="utf-8")
    print(f"Wrote summary: {out_root / 'summary.yaml'}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
