from dataclasses import dataclass
from typing import Optional, Tuple


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


@dataclass
class RawDetection:
    """
    One decoded row of model output, in absolute pixels of the model input.
    """

    x1: float
    y1: float
    x2: float
    y2: float
    confidence: float
    class_id: Optional[int] = None

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x1, self.y1, self.x2, self.y2


@dataclass
class NormalizedBox:
    """
    Tree region in [0, 1] coordinates relative to the source image.

    `x_bottom_right`/`y_bottom_right` duplicate `x + width`/`y + height` for
    consumers; every coordinate field is clamped to [0, 1] on its own, so near
    the image edges they can differ slightly from the sum.
    `confidence` only lives for the duration of one detection run.
    """

    x: float
    y: float
    width: float
    height: float
    x_bottom_right: float
    y_bottom_right: float
    confidence: float = 0.0
    selected: bool = True
    identifier: str = ""

    def as_xywh(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.width, self.height

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.x_bottom_right, self.y_bottom_right

    @classmethod
    def from_xyxy(
        cls,
        x1: float,
        y1: float,
        x2: float,
        y2: float,
        *,
        confidence: float = 0.0,
        identifier: str = "",
    ) -> "NormalizedBox":
        return cls(
            x=clamp01(x1),
            y=clamp01(y1),
            width=clamp01(x2 - x1),
            height=clamp01(y2 - y1),
            x_bottom_right=clamp01(x2),
            y_bottom_right=clamp01(y2),
            confidence=float(confidence),
            identifier=identifier,
        )
