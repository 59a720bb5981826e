from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from tree_kit.types import NormalizedBox

from .crop import crop_to_file
from .errors import ValidationError
from .records import BoundingBox, TreeEntity

PathLike = Union[str, Path]
Cropper = Callable[..., Path]

logger = logging.getLogger(__name__)


def selected_detections(detections: Sequence[NormalizedBox]) -> List[NormalizedBox]:
    return [d for d in detections if d.selected]


def toggle_selection(detections: Sequence[NormalizedBox], identifier: str) -> List[NormalizedBox]:
    """
    Return a new list with the selection of `identifier` flipped; order is kept.
    """

    if not any(d.identifier == identifier for d in detections):
        raise KeyError(identifier)
    return [replace(d, selected=not d.selected) if d.identifier == identifier else d for d in detections]


def timestamp_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def assemble_tree_records(
    detections: Sequence[NormalizedBox],
    image_path: PathLike,
    *,
    crop_dir: PathLike,
    captured_at: Optional[str] = None,
    cropper: Cropper = crop_to_file,
) -> List[TreeEntity]:
    """
    Turn the user's confirmed detections into unsaved `TreeEntity` records.

    Crops run one at a time in rank order. A crop that fails with `OSError`
    leaves that record without a crop instead of failing the batch.
    """

    chosen = selected_detections(detections)
    if not chosen:
        raise ValidationError("at least one detection must be selected to save")

    date_taken = captured_at or timestamp_now()
    records: List[TreeEntity] = []
    for det in chosen:
        crop_path: Optional[str] = None
        try:
            crop_path = str(cropper(image_path, det, out_dir=crop_dir, owner_id=det.identifier, tag="tree_crop"))
        except OSError as exc:
            logger.warning("Failed to crop %s from %s: %s", det.identifier, image_path, exc)

        records.append(
            TreeEntity(
                image_path=str(image_path),
                bounding_box=BoundingBox.from_normalized(det),
                date_taken=date_taken,
                description="",
                additional_images=[],
                crop_path=crop_path,
            )
        )
    return records
