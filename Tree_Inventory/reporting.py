"""
Inventory export: a JSON summary plus one CSV row per tree.

Layout and styling of printed reports are left to whatever consumes these files.
"""

from __future__ import annotations

import csv
import json
from collections import Counter
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .records import DefectEntity, TreeEntity


@dataclass(frozen=True)
class InventoryReport:
    date: str
    total_trees: int
    total_defects: int
    trees_with_defects: int
    taxon_counts: Dict[str, int]
    defect_type_counts: Dict[str, int]


def tree_to_dict(tree: TreeEntity, defects: Sequence[DefectEntity] = ()) -> Dict[str, Any]:
    payload = asdict(tree)
    payload["defects"] = [asdict(d) for d in defects]
    return payload


def build_inventory_report(
    date: str,
    trees: Sequence[TreeEntity],
    defects_by_tree: Mapping[int, Sequence[DefectEntity]],
) -> InventoryReport:
    all_defects = [d for t in trees if t.id is not None for d in defects_by_tree.get(t.id, ())]
    taxa = Counter(t.taxon_name or "unknown" for t in trees)
    defect_types = Counter(d.defect_type for d in all_defects)
    return InventoryReport(
        date=date,
        total_trees=len(trees),
        total_defects=len(all_defects),
        trees_with_defects=sum(1 for t in trees if t.id is not None and defects_by_tree.get(t.id)),
        taxon_counts=dict(sorted(taxa.items())),
        defect_type_counts=dict(sorted(defect_types.items())),
    )


def write_inventory_report(
    *,
    out_dir: Path,
    date: str,
    trees: Sequence[TreeEntity],
    defects_by_tree: Mapping[int, Sequence[DefectEntity]],
) -> Path:
    """
    Write `reports/<date>/inventory.json` with the summary and every tree with its defects.
    """

    report = build_inventory_report(date, trees, defects_by_tree)
    payload = {
        "summary": asdict(report),
        "trees": [tree_to_dict(t, defects_by_tree.get(t.id, ()) if t.id is not None else ()) for t in trees],
    }
    report_dir = out_dir / "reports" / date
    report_dir.mkdir(parents=True, exist_ok=True)
    path = report_dir / "inventory.json"
    path.write_text(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False), encoding="utf-8")
    return path


def write_inventory_csv(
    *,
    out_dir: Path,
    date: str,
    trees: Sequence[TreeEntity],
    defects_by_tree: Mapping[int, Sequence[DefectEntity]],
) -> Path:
    rows: List[Dict[str, Any]] = []
    for t in trees:
        defects = defects_by_tree.get(t.id, ()) if t.id is not None else ()
        rows.append(
            {
                "id": t.id,
                "date_taken": t.date_taken,
                "taxon_name": t.taxon_name or "",
                "image_path": t.image_path,
                "crop_path": t.crop_path or "",
                "bbox_x": t.bounding_box.x,
                "bbox_y": t.bounding_box.y,
                "bbox_width": t.bounding_box.width,
                "bbox_height": t.bounding_box.height,
                "description": t.description,
                "additional_images": len(t.additional_images),
                "defect_count": len(defects),
                "defect_types": ";".join(sorted({d.defect_type for d in defects})),
            }
        )

    report_dir = out_dir / "reports" / date
    report_dir.mkdir(parents=True, exist_ok=True)
    path = report_dir / "inventory.csv"
    if not rows:
        path.write_text("", encoding="utf-8")
        return path

    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=list(rows[0].keys()))
        writer.writeheader()
        writer.writerows(rows)
    return path


def today_date_str(now: Optional[datetime] = None) -> str:
    dt = now or datetime.now()
    return dt.strftime("%Y-%m-%d")
