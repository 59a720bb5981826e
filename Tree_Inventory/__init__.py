"""
Urban tree inventory layer built on top of `tree_kit`.

Detection itself stays in `tree_kit`; this package covers
- turning confirmed detections into tree records (crop + assemble)
- the SQLite record store for trees and their defects
- remote classification and defect detection clients
- inventory report export
- the async service that ties the steps together
"""

from __future__ import annotations

from .assemble import assemble_tree_records, selected_detections, toggle_selection
from .classifier import ClassificationClient, ClassificationResult
from .config import InventoryConfig, load_inventory_config
from .crop import crop_to_file
from .defects import DefectDetectionClient, DefectPrediction, process_defects_for_tree
from .errors import RecordNotFoundError, RemoteServiceError, ResponseFormatError, ValidationError
from .records import BoundingBox, DefectEntity, TreeEntity
from .reporting import today_date_str, write_inventory_csv, write_inventory_report
from .service import TreeInventoryService
from .store import TreeStore

__all__ = [
    "assemble_tree_records",
    "selected_detections",
    "toggle_selection",
    "ClassificationClient",
    "ClassificationResult",
    "InventoryConfig",
    "load_inventory_config",
    "crop_to_file",
    "DefectDetectionClient",
    "DefectPrediction",
    "process_defects_for_tree",
    "RecordNotFoundError",
    "RemoteServiceError",
    "ResponseFormatError",
    "ValidationError",
    "BoundingBox",
    "DefectEntity",
    "TreeEntity",
    "today_date_str",
    "write_inventory_csv",
    "write_inventory_report",
    "TreeInventoryService",
    "TreeStore",
]
