from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import numpy as np

from .catalog import ModelInfo
from .postprocess import DecodeConfig, TreeDecoder
from .preprocess import PreprocessedTensor, preprocess_array, preprocess_image
from .types import NormalizedBox


PathLike = Union[str, Path]

logger = logging.getLogger(__name__)

ROOT_MARKERS = ("pyproject.toml", ".git", "Models")


def find_project_root(start: Optional[PathLike] = None, markers: Sequence[str] = ROOT_MARKERS) -> Path:
    """
    Walk up from `start` (default: cwd) to the first directory holding one of
    `markers`, falling back to the start directory.
    """

    here = Path.cwd() if start is None else Path(start)
    here = here.resolve()
    if here.is_file():
        here = here.parent
    return next((d for d in (here, *here.parents) if any((d / m).exists() for m in markers)), here)


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Absolute paths pass through; relative model paths are taken from `root`,
    or from the discovered project root when `root` is "auto"/None.
    """

    p = Path(path)
    if p.is_absolute():
        return p
    base = find_project_root() if root in ("auto", None) else Path(root).resolve()
    return (base / p).resolve()


class TreeDetectionPipeline:
    """
    Loaded model handle: preprocess (stretch) -> inference -> decode.

    Built once at startup and handed to whoever needs detections; nothing
    reads the model through module state.
    """

    def __init__(
        self,
        infer_fn: Callable[[np.ndarray], np.ndarray],
        *,
        backend: Optional[object] = None,
        backend_name: Optional[str] = None,
        decode_cfg: DecodeConfig = DecodeConfig(),
    ):
        self._infer_fn = infer_fn
        self.backend = backend
        self.backend_name = backend_name
        self.decoder = TreeDecoder(decode_cfg)

    @property
    def input_size(self) -> int:
        return self.decoder.cfg.input_size

    def preprocess(self, image_path: PathLike) -> PreprocessedTensor:
        return preprocess_image(image_path, input_size=self.input_size)

    def infer(self, tensor: PreprocessedTensor) -> np.ndarray:
        return self._infer_fn(tensor.as_blob())

    def decode(self, preds: np.ndarray) -> List[NormalizedBox]:
        boxes = self.decoder.process(preds)
        logger.debug(
            "Decoded %d tree(s) with confidence > %.2f", len(boxes), self.decoder.cfg.conf_threshold
        )
        return boxes

    def detect_array(self, image_bgr: np.ndarray) -> List[NormalizedBox]:
        tensor = preprocess_array(image_bgr, input_size=self.input_size)
        return self.decode(self.infer(tensor))

    def __call__(self, image_path: PathLike) -> List[NormalizedBox]:
        return self.decode(self.infer(self.preprocess(image_path)))


def load_pipeline(
    model_path: PathLike,
    *,
    root: Optional[PathLike] = "auto",
    decode_cfg: DecodeConfig = DecodeConfig(),
    model_info: Optional[ModelInfo] = None,
    onnx_providers: Optional[Sequence[str]] = None,
    onnx_input_name: Optional[str] = None,
    onnx_output_name: Optional[str] = None,
) -> TreeDetectionPipeline:
    """
    Create the detection pipeline for an ONNX model on disk.

    The input side used for preprocessing and decoding comes from, in order:
    the side fixed in the ONNX graph, `model_info`, then `decode_cfg`.
    """

    from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

    resolved = resolve_path(model_path, root=root)
    if resolved.suffix.lower() != ".onnx":
        raise ValueError(f"Only .onnx models are supported, got '{resolved.suffix}'")

    backend = OnnxRuntimeBackend(
        resolved,
        OnnxRuntimeBackendConfig(
            providers=onnx_providers,
            input_name=onnx_input_name,
            output_name=onnx_output_name,
        ),
    )

    side = backend.static_input_size or (model_info.input_size if model_info is not None else None)
    if side is not None and side != decode_cfg.input_size:
        logger.warning("Model input side is %d, overriding configured %d", side, decode_cfg.input_size)
        decode_cfg = replace(decode_cfg, input_size=side)

    logger.info("Loaded tree model %s", backend.describe())
    return TreeDetectionPipeline(
        backend.infer,
        backend=backend,
        backend_name="onnxruntime",
        decode_cfg=decode_cfg,
    )
