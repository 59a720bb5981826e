from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Optional, Union

import cv2

from tree_kit.geometry import BoxLike, PixelRect, crop_rect
from tree_kit.preprocess import load_bgr8

PathLike = Union[str, Path]

JPEG_QUALITY = 100

logger = logging.getLogger(__name__)


def _slug(value: object) -> str:
    # labels come from remote services; keep only filename-safe characters
    return re.sub(r"[^\w.-]+", "_", str(value).strip(), flags=re.ASCII) or "x"


def unique_crop_path(out_dir: Path, *, owner_id: object, tag: str, now: Optional[float] = None) -> Path:
    """
    `<tag>_<owner_id>_<epoch_ms>.jpg` inside `out_dir`; a numeric suffix is
    added when that name is already taken.
    """

    stamp_ms = int(round((time.time() if now is None else now) * 1000))
    stem = f"{_slug(tag)}_{_slug(owner_id)}_{stamp_ms}"
    path = out_dir / f"{stem}.jpg"
    n = 1
    while path.exists():
        path = out_dir / f"{stem}_{n}.jpg"
        n += 1
    return path


def crop_array(image, box: BoxLike):
    """
    Slice the clamped crop rectangle of `box` out of an (H, W[, C]) image.
    """

    h, w = image.shape[:2]
    rect: PixelRect = crop_rect(box, (w, h))
    return image[rect.y : rect.y2, rect.x : rect.x2], rect


def crop_to_file(
    source_path: PathLike,
    box: BoxLike,
    *,
    out_dir: PathLike,
    owner_id: object,
    tag: str = "tree_crop",
    now: Optional[float] = None,
) -> Path:
    """
    Crop a normalized box out of the full-resolution source image and save it as JPEG.

    The pixel size comes from the decoded image itself, not from the model
    input side. Raises `FileNotFoundError` for an unreadable source and
    `OSError` when the crop cannot be written.
    """

    image = load_bgr8(source_path)
    crop, rect = crop_array(image, box)

    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    path = unique_crop_path(out, owner_id=owner_id, tag=tag, now=now)

    try:
        ok = cv2.imwrite(str(path), crop, [int(cv2.IMWRITE_JPEG_QUALITY), JPEG_QUALITY])
    except cv2.error as exc:
        raise OSError(f"Failed to write crop image: {path}") from exc
    if not ok:
        raise OSError(f"Failed to write crop image: {path}")

    logger.debug("Cropped %s rect=%s -> %s", source_path, rect.as_xywh(), path)
    return path
