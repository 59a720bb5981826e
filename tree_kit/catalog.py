from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union


PathLike = Union[str, Path]


@dataclass(frozen=True)
class ModelInfo:
    name: str
    path: str
    input_shape: Tuple[int, ...]
    output_shape: Tuple[int, ...]
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("model name must not be empty")
        if not self.path:
            raise ValueError("model path must not be empty")
        if len(self.input_shape) != 4 or self.input_shape[:2] != (1, 3):
            raise ValueError(f"input_shape must be (1, 3, H, W), got {self.input_shape}")
        if self.input_shape[2] != self.input_shape[3]:
            raise ValueError(f"input must be square, got {self.input_shape}")
        if len(self.output_shape) != 3 or self.output_shape[2] != 6:
            raise ValueError(f"output_shape must be (1, N, 6), got {self.output_shape}")

    @property
    def input_size(self) -> int:
        return int(self.input_shape[2])

    @property
    def max_detections(self) -> int:
        return int(self.output_shape[1])


MODEL_CATALOG: Dict[str, ModelInfo] = {
    "yolo11s": ModelInfo(
        name="yolo11s tree detector",
        path="Models/best-yolov11s-tune-no-freeze-no-single-cls.onnx",
        input_shape=(1, 3, 640, 640),
        output_shape=(1, 300, 6),
        description="YOLO11s fine-tuned on urban trees, end-to-end export",
    ),
}


def get_model(key: str) -> Optional[ModelInfo]:
    return MODEL_CATALOG.get(key)


def all_models() -> List[ModelInfo]:
    return list(MODEL_CATALOG.values())


def search_models(query: str) -> List[ModelInfo]:
    q = query.strip().lower()
    return [m for m in MODEL_CATALOG.values() if q in m.name.lower() or q in m.description.lower()]


def models_by_input_size(size: int) -> List[ModelInfo]:
    return [m for m in MODEL_CATALOG.values() if m.input_size == size]


def load_model_info(path: PathLike) -> ModelInfo:
    """
    Load a model description from a JSON sidecar, e.g. `Models/tree_model.json`:

        {"name": "...", "path": "Models/x.onnx",
         "input_shape": [1, 3, 640, 640], "output_shape": [1, 300, 6]}
    """

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Model info not found: {p}")
    try:
        payload = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid model info JSON: {p}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Model info must be a JSON object")

    for key in ("name", "path", "input_shape", "output_shape"):
        if key not in payload:
            raise ValueError(f"Missing required key: {key}")
    for key in ("input_shape", "output_shape"):
        value = payload[key]
        if not isinstance(value, list) or not all(isinstance(v, int) and not isinstance(v, bool) for v in value):
            raise ValueError(f"{key} must be a list of integers")
    description = payload.get("description", "")
    if not isinstance(description, str):
        raise ValueError("description must be a string if provided")

    return ModelInfo(
        name=str(payload["name"]),
        path=str(payload["path"]),
        input_shape=tuple(payload["input_shape"]),
        output_shape=tuple(payload["output_shape"]),
        description=description,
    )
