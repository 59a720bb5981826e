from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

from tree_kit.types import NormalizedBox

from .classifier import image_to_base64, post_json
from .config import DEFAULT_DEFECT_CONF
from .crop import crop_to_file
from .errors import ResponseFormatError
from .records import DefectEntity, TreeEntity

PathLike = Union[str, Path]

TREE_CROP_KEY = "tree_crop"
ADDITIONAL_KEY_RE = re.compile(r"^additional_(\d+)$")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DefectPrediction:
    """
    One defect returned by the remote detector; corners normalized to the image named by `key`.
    """

    key: str
    label: str
    confidence: float
    x1: float
    y1: float
    x2: float
    y2: float

    def as_box(self) -> NormalizedBox:
        return NormalizedBox.from_xyxy(self.x1, self.y1, self.x2, self.y2, confidence=self.confidence)


class DefectDetector(Protocol):
    def detect(self, images: Dict[str, str]) -> List[DefectPrediction]: ...


def _number(item: Dict[str, Any], key: str, idx: int) -> float:
    value = item.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ResponseFormatError(f"defect[{idx}].{key} must be a number")
    return float(value)


def parse_defect_response(payload: Any) -> List[DefectPrediction]:
    """
    Accepts either a bare list of defects or `{"defects": [...]}`.
    """

    if isinstance(payload, dict):
        payload = payload.get("defects")
    if not isinstance(payload, list):
        raise ResponseFormatError("Defect response must be a list or an object with a 'defects' list")

    out: List[DefectPrediction] = []
    for idx, item in enumerate(payload):
        if not isinstance(item, dict):
            raise ResponseFormatError(f"defect[{idx}] must be an object")
        key = item.get("key")
        label = item.get("label")
        if not isinstance(key, str) or not key:
            raise ResponseFormatError(f"defect[{idx}].key must be a non-empty string")
        if not isinstance(label, str) or not label.strip():
            raise ResponseFormatError(f"defect[{idx}].label must be a non-empty string")
        out.append(
            DefectPrediction(
                key=key,
                label=label.strip(),
                confidence=_number(item, "confidence", idx),
                x1=_number(item, "x1", idx),
                y1=_number(item, "y1", idx),
                x2=_number(item, "x2", idx),
                y2=_number(item, "y2", idx),
            )
        )
    return out


def filter_defects(predictions: Sequence[DefectPrediction], conf_threshold: float = DEFAULT_DEFECT_CONF) -> List[DefectPrediction]:
    return [p for p in predictions if p.confidence > conf_threshold]


def prepare_images_for_defect_detection(crop_path: Optional[str], additional_images: Sequence[str]) -> Dict[str, str]:
    """
    Map request keys to base64 image data: `tree_crop`, then `additional_<i>`.
    """

    images: Dict[str, str] = {}
    if crop_path:
        images[TREE_CROP_KEY] = image_to_base64(crop_path)
    for i, path in enumerate(additional_images):
        images[f"additional_{i}"] = image_to_base64(path)
    return images


def resolve_image_for_key(key: str, crop_path: Optional[str], additional_images: Sequence[str]) -> Optional[str]:
    if key == TREE_CROP_KEY:
        return crop_path or None
    m = ADDITIONAL_KEY_RE.match(key)
    if m is None:
        return None
    index = int(m.group(1))
    if index >= len(additional_images):
        return None
    return additional_images[index]


class DefectDetectionClient:
    """HTTP client for the remote defect detector."""

    def __init__(self, api_url: str, *, timeout_s: float = 30.0) -> None:
        if not api_url:
            raise ValueError("api_url must not be empty")
        self._api_url = api_url
        self._timeout_s = float(timeout_s)

    def detect(self, images: Dict[str, str]) -> List[DefectPrediction]:
        logger.info("Requesting defect detection for %s via %s", sorted(images), self._api_url)
        return parse_defect_response(post_json(self._api_url, {"images": images}, timeout_s=self._timeout_s))


def process_defects_for_tree(
    tree: TreeEntity,
    detector: DefectDetector,
    *,
    crop_dir: PathLike,
    conf_threshold: float = DEFAULT_DEFECT_CONF,
) -> List[DefectEntity]:
    """
    Send a tree's crop and auxiliary images to the detector, crop every kept
    defect, and build unsaved `DefectEntity` records.

    Crop failures propagate: a partial defect batch is never returned.
    """

    if tree.id is None:
        raise ValueError("tree must be saved before defect detection")

    images = prepare_images_for_defect_detection(tree.crop_path, tree.additional_images)
    if not images:
        return []

    predictions = filter_defects(detector.detect(images), conf_threshold)
    records: List[DefectEntity] = []
    for idx, pred in enumerate(predictions):
        source = resolve_image_for_key(pred.key, tree.crop_path, tree.additional_images)
        if source is None:
            logger.warning("Skipping defect %d with unknown image key %r", idx, pred.key)
            continue

        box = pred.as_box()
        crop_path = crop_to_file(
            source,
            box,
            out_dir=crop_dir,
            owner_id=f"{tree.id}_{idx}",
            tag=f"defect_{pred.label}",
        )
        records.append(
            DefectEntity(
                tree_id=tree.id,
                xtl=box.x,
                ytl=box.y,
                xbr=box.x_bottom_right,
                ybr=box.y_bottom_right,
                image_path=source,
                crop_path=str(crop_path),
                defect_type=pred.label,
            )
        )
    return records
