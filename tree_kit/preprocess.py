from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

import cv2
import numpy as np

from .errors import DecodeError


PathLike = Union[str, Path]

DEFAULT_INPUT_SIZE = 640
# EXIF orientation is applied; 16-bit data is kept for `_to_bgr8`
IMREAD_FLAGS = cv2.IMREAD_COLOR | cv2.IMREAD_ANYDEPTH


@dataclass(frozen=True)
class PreprocessedTensor:
    """
    Flat channel-major buffer (R plane, G plane, B plane) with its declared shape.

    `orig_size` is the (width, height) of the source image before resizing.
    """

    data: np.ndarray
    shape: Tuple[int, int, int, int]
    orig_size: Tuple[int, int]

    def as_blob(self) -> np.ndarray:
        return self.data.reshape(self.shape)


def read_image(path: PathLike, flags: int = IMREAD_FLAGS) -> np.ndarray:
    img = cv2.imread(str(path), flags)
    if img is None:
        raise FileNotFoundError(f"Could not read image at path: {path}")
    return img


def _to_bgr8(image: np.ndarray) -> np.ndarray:
    if image.dtype == np.uint16:
        image = (image // 257).astype(np.uint8)
    elif image.dtype != np.uint8:
        raise DecodeError(f"Unsupported image dtype: {image.dtype}")

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.ndim == 3 and image.shape[2] == 1:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.ndim == 3 and image.shape[2] == 4:
        # alpha is dropped
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    if image.ndim == 3 and image.shape[2] == 3:
        return image
    raise DecodeError(f"Unsupported image shape: {image.shape}")


def load_bgr8(path: PathLike) -> np.ndarray:
    """
    Read a photo upright as 8-bit BGR. Detection, cropping and overlays all
    load through here so normalized boxes land on the same pixels.
    """

    return _to_bgr8(read_image(path))


def preprocess_array(image: np.ndarray, input_size: int = DEFAULT_INPUT_SIZE) -> PreprocessedTensor:
    """
    Stretch an OpenCV image to `input_size` x `input_size` and pack it as NCHW float32 RGB in [0, 1].

    Aspect ratio is not preserved, so decoded boxes divided by `input_size`
    map straight back to the source image in normalized coordinates.
    """

    if image is None or not hasattr(image, "shape"):
        raise TypeError("image must be a NumPy array.")
    if input_size < 1:
        raise ValueError("input_size must be >= 1")

    bgr = _to_bgr8(image)
    orig_h, orig_w = bgr.shape[:2]

    resized = cv2.resize(bgr, (input_size, input_size), interpolation=cv2.INTER_LINEAR)
    if resized is None or resized.shape[:2] != (input_size, input_size):
        got = None if resized is None else resized.shape[:2]
        raise DecodeError(f"Unexpected resized size: {got}, expected {(input_size, input_size)}")

    # BGR -> RGB, normalize, HWC -> CHW
    chw = np.transpose(resized[:, :, ::-1].astype(np.float32) / 255.0, (2, 0, 1))
    data = np.ascontiguousarray(chw).reshape(-1)

    return PreprocessedTensor(
        data=data,
        shape=(1, 3, input_size, input_size),
        orig_size=(int(orig_w), int(orig_h)),
    )


def preprocess_image(path: PathLike, input_size: int = DEFAULT_INPUT_SIZE) -> PreprocessedTensor:
    return preprocess_array(load_bgr8(path), input_size=input_size)
