from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .errors import DecodeError, InferenceOutputError
from .nms import NMSConfig, nms
from .types import NormalizedBox, RawDetection

ROW_WIDTH = 6


@dataclass
class DecodeConfig:
    """
    Settings for turning raw (1, N, 6) detector output into ranked tree boxes.
    """

    conf_threshold: float = 0.5
    # Side of the square model input; raw corners are divided by it.
    input_size: int = 640
    # None keeps the model's own post-NMS rows untouched.
    iou_threshold: Optional[float] = None
    max_detections: Optional[int] = None
    id_prefix: str = "tree_"


class TreeDecoder:
    """
    Decoder for end-to-end YOLO exports that emit already-suppressed rows:

        (1, N, 6) or (N, 6): [x1, y1, x2, y2, confidence, class_id]

    Corners are absolute pixels of the square model input. The output is a
    list of `NormalizedBox` sorted by confidence (descending) whose
    identifiers follow that rank order.
    """

    def __init__(self, cfg: DecodeConfig = DecodeConfig()):
        if cfg.input_size <= 0:
            raise ValueError("input_size must be > 0")
        self.cfg = cfg

    def process(self, preds: Optional[np.ndarray]) -> List[NormalizedBox]:
        rows = self._rows(preds)
        if rows.shape[0] == 0:
            return []

        scores = rows[:, 4]
        keep = scores > self.cfg.conf_threshold
        rows = rows[keep]
        if rows.shape[0] == 0:
            return []

        corners = rows[:, 0:4] / float(self.cfg.input_size)
        scores = rows[:, 4]

        if self.cfg.iou_threshold is not None:
            order = nms(corners, scores, NMSConfig(iou_threshold=self.cfg.iou_threshold))
        else:
            order = np.argsort(-scores, kind="stable")
        if self.cfg.max_detections is not None:
            order = order[: self.cfg.max_detections]

        boxes = []
        for rank, idx in enumerate(order, start=1):
            x, y, w, h, xbr, ybr = self._normalized_fields(corners[idx])
            boxes.append(
                NormalizedBox(
                    x=x,
                    y=y,
                    width=w,
                    height=h,
                    x_bottom_right=xbr,
                    y_bottom_right=ybr,
                    confidence=float(scores[idx]),
                    selected=True,
                    identifier=f"{self.cfg.id_prefix}{rank}",
                )
            )
        return boxes

    def raw_detections(self, preds: Optional[np.ndarray]) -> List[RawDetection]:
        """
        All N rows as `RawDetection`, unfiltered, in model order.
        """

        return [
            RawDetection(
                x1=float(r[0]),
                y1=float(r[1]),
                x2=float(r[2]),
                y2=float(r[3]),
                confidence=float(r[4]),
                class_id=int(r[5]),
            )
            for r in self._rows(preds)
        ]

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _rows(self, preds: Optional[np.ndarray]) -> np.ndarray:
        if preds is None:
            raise InferenceOutputError("Model output tensor is missing.")

        p = np.asarray(preds, dtype=np.float64)
        if p.ndim < 2:
            raise InferenceOutputError(f"Cannot read detection count from output shape {p.shape}.")
        if p.ndim > 3:
            raise DecodeError(f"Unsupported output shape: {p.shape}")
        if p.ndim == 3:
            if p.shape[0] != 1:
                raise DecodeError(f"Batch > 1 is not supported (got shape {p.shape}). Pass one image at a time.")
            p = p[0]
        if p.shape[1] != ROW_WIDTH:
            raise DecodeError(f"Expected rows of {ROW_WIDTH} values, got shape {p.shape}")
        return p

    @staticmethod
    def _normalized_fields(corners: np.ndarray) -> Tuple[float, ...]:
        x1, y1, x2, y2 = (float(v) for v in corners)
        width = x2 - x1
        height = y2 - y1
        # each field is clamped on its own
        fields = np.clip(np.array([x1, y1, width, height, x1 + width, y1 + height]), 0.0, 1.0)
        return tuple(float(v) for v in fields)


def decode_detections(
    preds: Optional[np.ndarray],
    conf_threshold: float = 0.5,
    input_size: int = 640,
) -> List[NormalizedBox]:
    return TreeDecoder(DecodeConfig(conf_threshold=conf_threshold, input_size=input_size)).process(preds)
