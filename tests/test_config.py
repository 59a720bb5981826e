import json
import tempfile
import unittest
from pathlib import Path

from Tree_Inventory.config import DEFAULT_DEFECT_CONF, DEFAULT_TREE_CONF, InventoryConfig, load_inventory_config


class TestInventoryConfig(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.path = Path(self._td.name) / "inventory.json"

    def tearDown(self) -> None:
        self._td.cleanup()

    def _write(self, payload) -> Path:
        self.path.write_text(json.dumps(payload), encoding="utf-8")
        return self.path

    def test_defaults(self) -> None:
        cfg = load_inventory_config(self._write({"model_path": "Models/tree.onnx"}))
        self.assertEqual(cfg.tree_conf_threshold, DEFAULT_TREE_CONF)
        self.assertEqual(cfg.defect_conf_threshold, DEFAULT_DEFECT_CONF)
        self.assertEqual(cfg.input_size, 640)
        self.assertEqual(cfg.database_path, "data/trees.db")
        self.assertEqual(cfg.crop_dir, Path("data/media") / "crops")
        self.assertIsNone(cfg.classify_url)
        self.assertIsNone(cfg.onnx_providers)

    def test_full_config(self) -> None:
        cfg = load_inventory_config(
            self._write(
                {
                    "schema_version": 1,
                    "model_path": "Models/tree.onnx",
                    "input_size": 320,
                    "tree_conf_threshold": 0.4,
                    "defect_conf_threshold": 0.3,
                    "database_path": "db/trees.db",
                    "media_dir": "media",
                    "classify_url": "http://localhost:8000/classify",
                    "defect_detect_url": "http://localhost:8000/defects",
                    "http_timeout_s": 10,
                    "onnx_providers": ["CPUExecutionProvider"],
                }
            )
        )
        self.assertEqual(cfg.input_size, 320)
        self.assertEqual(cfg.tree_conf_threshold, 0.4)
        self.assertEqual(cfg.http_timeout_s, 10.0)
        self.assertEqual(cfg.onnx_providers, ("CPUExecutionProvider",))
        self.assertEqual(cfg.crop_dir, Path("media") / "crops")

    def test_rejects_bad_values(self) -> None:
        bad = [
            {},
            {"model_path": ""},
            {"model_path": "m.onnx", "unknown": 1},
            {"model_path": "m.onnx", "schema_version": 2},
            {"model_path": "m.onnx", "tree_conf_threshold": 1.0},
            {"model_path": "m.onnx", "defect_conf_threshold": -0.1},
            {"model_path": "m.onnx", "input_size": 16},
            {"model_path": "m.onnx", "input_size": 640.5},
            {"model_path": "m.onnx", "http_timeout_s": 0},
            {"model_path": "m.onnx", "onnx_providers": "CPUExecutionProvider"},
            {"model_path": "m.onnx", "classify_url": ""},
            ["model_path"],
        ]
        for payload in bad:
            with self.assertRaises(ValueError, msg=repr(payload)):
                load_inventory_config(self._write(payload))

    def test_invalid_json_and_missing_file(self) -> None:
        self.path.write_text("{not json", encoding="utf-8")
        with self.assertRaises(ValueError):
            load_inventory_config(self.path)
        with self.assertRaises(FileNotFoundError):
            load_inventory_config(Path(self._td.name) / "missing.json")

    def test_direct_construction_validates(self) -> None:
        with self.assertRaises(ValueError):
            InventoryConfig(model_path="m.onnx", tree_conf_threshold=1.5)


if __name__ == "__main__":
    unittest.main()
