"""
Coordinate transforms between three frames:

- normalized: [0, 1] x [0, 1] relative to the source image
- display: a container showing the image scaled to fit ("contain"), centered
- pixel: absolute integer pixels of the full-resolution source image
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol, Tuple


Size = Tuple[int, int]


class BoxLike(Protocol):
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class DisplayLayout:
    displayed_width: float
    displayed_height: float
    offset_x: float
    offset_y: float


@dataclass(frozen=True)
class PixelRect:
    x: int
    y: int
    width: int
    height: int

    @property
    def x2(self) -> int:
        return self.x + self.width

    @property
    def y2(self) -> int:
        return self.y + self.height

    def as_xywh(self) -> Tuple[int, int, int, int]:
        return self.x, self.y, self.width, self.height


def _check_size(size: Tuple[float, float], name: str) -> None:
    w, h = size
    if w <= 0 or h <= 0:
        raise ValueError(f"{name} must be positive, got {size!r}")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(value, hi))


def contain_layout(image_size: Tuple[float, float], container_size: Tuple[float, float]) -> DisplayLayout:
    """
    Fit an image inside a container preserving aspect ratio and center it.

    Args:
        image_size: (width, height) of the source image
        container_size: (width, height) of the viewport
    """

    _check_size(image_size, "image_size")
    _check_size(container_size, "container_size")
    img_w, img_h = image_size
    cont_w, cont_h = container_size

    image_ratio = img_w / img_h
    container_ratio = cont_w / cont_h

    if image_ratio > container_ratio:
        displayed_w = float(cont_w)
        displayed_h = cont_w / image_ratio
        return DisplayLayout(displayed_w, displayed_h, 0.0, (cont_h - displayed_h) / 2)

    displayed_h = float(cont_h)
    displayed_w = cont_h * image_ratio
    return DisplayLayout(displayed_w, displayed_h, (cont_w - displayed_w) / 2, 0.0)


def normalized_to_display(box: BoxLike, layout: DisplayLayout) -> Tuple[float, float, float, float]:
    x = box.x * layout.displayed_width + layout.offset_x
    y = box.y * layout.displayed_height + layout.offset_y
    return x, y, box.width * layout.displayed_width, box.height * layout.displayed_height


def normalized_to_pixel(box: BoxLike, image_size: Size) -> PixelRect:
    _check_size(image_size, "image_size")
    img_w, img_h = image_size
    return PixelRect(
        x=round_half_up(box.x * img_w),
        y=round_half_up(box.y * img_h),
        width=round_half_up(box.width * img_w),
        height=round_half_up(box.height * img_h),
    )


def clamp_pixel_rect(rect: PixelRect, image_size: Size) -> PixelRect:
    """
    Force a rectangle inside the image; width and height never drop below 1.
    """

    _check_size(image_size, "image_size")
    img_w, img_h = int(image_size[0]), int(image_size[1])
    x = clamp(rect.x, 0, img_w - 1)
    y = clamp(rect.y, 0, img_h - 1)
    return PixelRect(
        x=x,
        y=y,
        width=clamp(rect.width, 1, img_w - x),
        height=clamp(rect.height, 1, img_h - y),
    )


def crop_rect(box: BoxLike, image_size: Size) -> PixelRect:
    return clamp_pixel_rect(normalized_to_pixel(box, image_size), image_size)
