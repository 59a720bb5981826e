from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from tree_kit.types import NormalizedBox


@dataclass(frozen=True)
class BoundingBox:
    """
    Persisted tree box: normalized top-left corner plus size.
    """

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_normalized(cls, box: NormalizedBox) -> "BoundingBox":
        return cls(x=box.x, y=box.y, width=box.width, height=box.height)


@dataclass
class TreeEntity:
    image_path: str
    bounding_box: BoundingBox
    date_taken: str
    description: str = ""
    additional_images: List[str] = field(default_factory=list)
    crop_path: Optional[str] = None
    taxon_name: Optional[str] = None
    id: Optional[int] = None


@dataclass
class DefectEntity:
    """
    Defect box in corner form (`xtl, ytl, xbr, ybr`), normalized to the image at `image_path`.
    """

    tree_id: int
    xtl: float
    ytl: float
    xbr: float
    ybr: float
    image_path: str
    crop_path: str
    defect_type: str
    defect_id: Optional[int] = None

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.xtl, self.ytl, self.xbr, self.ybr
