from __future__ import annotations

from typing import Iterable, Tuple

import numpy as np

from .geometry import crop_rect
from .types import NormalizedBox

# BGR
SELECTED_COLOR = (94, 197, 34)
UNSELECTED_COLOR = (68, 68, 239)


def _dashed_line(img: np.ndarray, p0: Tuple[int, int], p1: Tuple[int, int], color, thickness: int, dash: int) -> None:
    import cv2  # type: ignore

    x0, y0 = p0
    x1, y1 = p1
    length = int(np.hypot(x1 - x0, y1 - y0))
    if length == 0:
        return
    for start in range(0, length, dash * 2):
        end = min(start + dash, length)
        a = (int(x0 + (x1 - x0) * start / length), int(y0 + (y1 - y0) * start / length))
        b = (int(x0 + (x1 - x0) * end / length), int(y0 + (y1 - y0) * end / length))
        cv2.line(img, a, b, color, thickness)


def draw_tree_boxes(
    image_bgr: np.ndarray,
    boxes: Iterable[NormalizedBox],
    *,
    box_thickness: int = 3,
    font_scale: float = 0.6,
    show_score: bool = False,
) -> np.ndarray:
    """
    Draw rank-numbered tree boxes on an OpenCV BGR image and return a copy.

    Selected boxes are solid green, unselected ones dashed red. Numbers follow
    the iteration order, which is the confidence rank after decoding.
    """

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for draw_tree_boxes(). Install with `pip install opencv-python`.") from e

    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

    out = image_bgr.copy()
    h, w = out.shape[:2]

    for number, box in enumerate(boxes, start=1):
        rect = crop_rect(box, (w, h))
        x1, y1 = rect.x, rect.y
        x2, y2 = rect.x2 - 1, rect.y2 - 1
        color = SELECTED_COLOR if box.selected else UNSELECTED_COLOR

        if box.selected:
            cv2.rectangle(out, (x1, y1), (x2, y2), color, thickness=box_thickness)
        else:
            for p0, p1 in (((x1, y1), (x2, y1)), ((x2, y1), (x2, y2)), ((x2, y2), (x1, y2)), ((x1, y2), (x1, y1))):
                _dashed_line(out, p0, p1, color, box_thickness, dash=5)

        label = str(number)
        if show_score:
            label = f"{label} {box.confidence:.2f}"
        center = (min(x1 + 16, w - 1), min(y1 + 16, h - 1))
        cv2.circle(out, center, 12, (0, 0, 0), thickness=-1)
        cv2.circle(out, center, 12, (255, 255, 255), thickness=2)
        (tw, th), _ = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, font_scale, 2)
        cv2.putText(
            out,
            label,
            (center[0] - tw // 2, center[1] + th // 2),
            cv2.FONT_HERSHEY_SIMPLEX,
            font_scale,
            (255, 255, 255),
            thickness=2,
            lineType=cv2.LINE_AA,
        )

    return out
