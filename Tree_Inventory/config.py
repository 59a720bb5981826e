from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

DEFAULT_TREE_CONF = 0.5
DEFAULT_DEFECT_CONF = 0.25


@dataclass(frozen=True)
class InventoryConfig:
    model_path: str
    schema_version: int = 1
    input_size: int = 640
    tree_conf_threshold: float = DEFAULT_TREE_CONF
    defect_conf_threshold: float = DEFAULT_DEFECT_CONF
    database_path: str = "data/trees.db"
    media_dir: str = "data/media"
    classify_url: Optional[str] = None
    defect_detect_url: Optional[str] = None
    http_timeout_s: float = 30.0
    onnx_providers: Optional[Tuple[str, ...]] = None

    def __post_init__(self) -> None:
        if self.schema_version != 1:
            raise ValueError("inventory config schema_version must be 1")
        if not self.model_path:
            raise ValueError("model_path must not be empty")
        if self.input_size < 32:
            raise ValueError("input_size must be >= 32")
        if not 0.0 <= self.tree_conf_threshold < 1.0:
            raise ValueError("tree_conf_threshold must be in [0, 1)")
        if not 0.0 <= self.defect_conf_threshold < 1.0:
            raise ValueError("defect_conf_threshold must be in [0, 1)")
        if self.http_timeout_s <= 0:
            raise ValueError("http_timeout_s must be > 0")

    @property
    def crop_dir(self) -> Path:
        return Path(self.media_dir) / "crops"


def _require_str(payload: Dict[str, Any], key: str) -> str:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    value = payload[key]
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} must be a non-empty string")
    return value


def _optional_str(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} must be a non-empty string if provided")
    return value


def _optional_number(payload: Dict[str, Any], key: str, default: float) -> float:
    if key not in payload:
        return default
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _optional_int(payload: Dict[str, Any], key: str, default: int) -> int:
    if key not in payload:
        return default
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def load_inventory_config(path: Path) -> InventoryConfig:
    if not path.exists():
        raise FileNotFoundError(f"Inventory config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid inventory config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Inventory config must be a JSON object")

    allowed = {
        "schema_version",
        "model_path",
        "input_size",
        "tree_conf_threshold",
        "defect_conf_threshold",
        "database_path",
        "media_dir",
        "classify_url",
        "defect_detect_url",
        "http_timeout_s",
        "onnx_providers",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown inventory config keys: {unknown}")

    providers = payload.get("onnx_providers")
    if providers is not None:
        if not isinstance(providers, list) or not all(isinstance(p, str) and p.strip() for p in providers):
            raise ValueError("onnx_providers must be a list of non-empty strings")
        providers = tuple(p.strip() for p in providers)

    return InventoryConfig(
        schema_version=_optional_int(payload, "schema_version", 1),
        model_path=_require_str(payload, "model_path"),
        input_size=_optional_int(payload, "input_size", 640),
        tree_conf_threshold=_optional_number(payload, "tree_conf_threshold", DEFAULT_TREE_CONF),
        defect_conf_threshold=_optional_number(payload, "defect_conf_threshold", DEFAULT_DEFECT_CONF),
        database_path=_optional_str(payload, "database_path") or "data/trees.db",
        media_dir=_optional_str(payload, "media_dir") or "data/media",
        classify_url=_optional_str(payload, "classify_url"),
        defect_detect_url=_optional_str(payload, "defect_detect_url"),
        http_timeout_s=_optional_number(payload, "http_timeout_s", 30.0),
        onnx_providers=providers,
    )
