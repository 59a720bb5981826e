"""
Tree detection helpers: preprocessing, decoding and coordinate transforms.

Works with NumPy arrays emitted by ONNX Runtime. Core pieces depend only on
NumPy and OpenCV; the inference runtime is imported when a model is loaded.
"""

from .catalog import MODEL_CATALOG, ModelInfo, get_model, load_model_info
from .errors import DecodeError, InferenceOutputError
from .geometry import (
    DisplayLayout,
    PixelRect,
    clamp_pixel_rect,
    contain_layout,
    crop_rect,
    normalized_to_display,
    normalized_to_pixel,
)
from .nms import nms
from .postprocess import DecodeConfig, TreeDecoder, decode_detections
from .preprocess import PreprocessedTensor, load_bgr8, preprocess_array, preprocess_image, read_image
from .runtime import TreeDetectionPipeline, find_project_root, load_pipeline, resolve_path
from .types import NormalizedBox, RawDetection
from .visualize import draw_tree_boxes

__all__ = [
    "MODEL_CATALOG",
    "ModelInfo",
    "get_model",
    "load_model_info",
    "DecodeError",
    "InferenceOutputError",
    "DisplayLayout",
    "PixelRect",
    "clamp_pixel_rect",
    "contain_layout",
    "crop_rect",
    "normalized_to_display",
    "normalized_to_pixel",
    "nms",
    "DecodeConfig",
    "TreeDecoder",
    "decode_detections",
    "PreprocessedTensor",
    "preprocess_array",
    "preprocess_image",
    "read_image",
    "load_bgr8",
    "TreeDetectionPipeline",
    "find_project_root",
    "load_pipeline",
    "resolve_path",
    "NormalizedBox",
    "RawDetection",
    "draw_tree_boxes",
]
