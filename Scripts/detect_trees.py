from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import cv2
from tqdm import tqdm

from Tree_Inventory.config import InventoryConfig, load_inventory_config
from Tree_Inventory.errors import ValidationError
from Tree_Inventory.service import TreeInventoryService, build_service
from tree_kit import draw_tree_boxes, load_bgr8
from tree_kit.types import NormalizedBox


def _config_from_args(args: argparse.Namespace) -> InventoryConfig:
    if args.config:
        cfg = load_inventory_config(Path(args.config))
    else:
        cfg = InventoryConfig(model_path=args.model)

    overrides = {}
    if args.model and args.config:
        overrides["model_path"] = args.model
    if args.conf is not None:
        overrides["tree_conf_threshold"] = float(args.conf)
    if args.imgsz is not None:
        overrides["input_size"] = int(args.imgsz)
    if args.db:
        overrides["database_path"] = args.db
    if args.media_dir:
        overrides["media_dir"] = args.media_dir
    if args.onnx_providers:
        overrides["onnx_providers"] = tuple(p.strip() for p in str(args.onnx_providers).split(",") if p.strip())
    if not overrides:
        return cfg

    return replace(cfg, **overrides)


def _write_visualization(image_path: Path, boxes: List[NormalizedBox], vis_dir: Path) -> Path:
    img = load_bgr8(image_path)
    vis = draw_tree_boxes(img, boxes, show_score=True)
    vis_dir.mkdir(parents=True, exist_ok=True)
    out = vis_dir / f"{image_path.stem}_trees.jpg"
    try:
        ok = cv2.imwrite(str(out), vis)
    except cv2.error as exc:
        raise OSError(f"Failed to write visualization: {out}") from exc
    if not ok:
        raise OSError(f"Failed to write visualization: {out}")
    return out


async def _run(service: TreeInventoryService, args: argparse.Namespace) -> int:
    images = [Path(p) for p in args.image]
    saved_total = 0
    failed = 0

    for image_path in tqdm(images, desc="detect", unit="img", disable=len(images) < 2):
        vis_path: Optional[Path] = None
        try:
            boxes = await service.detect(image_path)
            if args.vis_dir:
                vis_path = _write_visualization(image_path, boxes, Path(args.vis_dir))
        except (OSError, ValueError, RuntimeError) as exc:
            # one bad photo does not stop the batch
            logging.getLogger("detect_trees").error("Processing failed for %s: %s", image_path, exc)
            failed += 1
            continue

        print(f"{image_path}: {len(boxes)} tree(s)")
        for box in boxes:
            print(f"  {box.identifier} conf={box.confidence:.3f} xywh={tuple(round(v, 4) for v in box.as_xywh())}")
        if vis_path is not None:
            print(f"  visualization: {vis_path}")

        if args.save and boxes:
            try:
                trees = await service.save_selected(image_path, boxes)
            except ValidationError as exc:
                print(f"  not saved: {exc}")
                continue
            saved_total += len(trees)
            print(f"  saved ids: {[t.id for t in trees]}")

    if args.report_dir:
        try:
            paths = await service.export_report(args.report_dir)
        except ValidationError as exc:
            print(f"Report skipped: {exc}")
        else:
            print(f"Report: {paths['json']} / {paths['csv']}")

    print(f"Done: {len(images) - failed} image(s) processed, {failed} failed, {saved_total} tree(s) saved.")
    return 1 if failed else 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Detect trees in photos and optionally save them to the inventory.")
    parser.add_argument("--image", action="append", required=True, help="Input photo (repeatable).")
    parser.add_argument("--config", default=None, help="Inventory config JSON.")
    parser.add_argument("--model", default=None, help="Path to the tree detector (.onnx).")
    parser.add_argument("--imgsz", type=int, default=None, help="Square model input size (e.g., 640).")
    parser.add_argument("--conf", type=float, default=None, help="Tree confidence threshold (default 0.5).")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--db", default=None, help="SQLite database path.")
    parser.add_argument("--media-dir", default=None, help="Directory for crops.")
    parser.add_argument("--save", action="store_true", help="Save every detected tree to the inventory.")
    parser.add_argument("--vis-dir", default=None, help="Write numbered box overlays here.")
    parser.add_argument("--report-dir", default=None, help="Export an inventory report here after processing.")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, WARNING, ...).")
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if not args.config and not args.model:
        parser.error("either --config or --model is required")

    cfg = _config_from_args(args)
    service = build_service(cfg)
    try:
        return asyncio.run(_run(service, args))
    finally:
        service.store.close()


if __name__ == "__main__":
    raise SystemExit(main())
