from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass
class NMSConfig:
    iou_threshold: float = 0.45
    max_detections: Optional[int] = None


def box_iou(box: np.ndarray, others: np.ndarray) -> np.ndarray:
    """
    IoU of one xyxy box against an (N, 4) array of xyxy boxes.
    """

    xx1 = np.maximum(box[0], others[:, 0])
    yy1 = np.maximum(box[1], others[:, 1])
    xx2 = np.minimum(box[2], others[:, 2])
    yy2 = np.minimum(box[3], others[:, 3])

    inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)
    area = max(0.0, float(box[2] - box[0])) * max(0.0, float(box[3] - box[1]))
    areas = np.maximum(0.0, others[:, 2] - others[:, 0]) * np.maximum(0.0, others[:, 3] - others[:, 1])
    union = area + areas - inter
    return inter / np.maximum(union, 1e-9)


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Class-agnostic NumPy NMS. Expects boxes shape (N, 4) in xyxy and scores shape (N,).
    Returns indices of kept boxes, highest score first.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    order = np.argsort(-scores, kind="stable")
    keep = []
    limit = cfg.max_detections

    while order.size > 0 and (limit is None or len(keep) < limit):
        i = order[0]
        keep.append(i)
        if order.size == 1:
            break
        iou = box_iou(boxes[i], boxes[order[1:]])
        order = order[1:][iou <= cfg.iou_threshold]

    return np.array(keep, dtype=np.int64)
