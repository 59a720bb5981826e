import tempfile
import unittest
from pathlib import Path
from typing import Dict, List

import cv2
import numpy as np

from Tree_Inventory.defects import (
    DefectPrediction,
    filter_defects,
    parse_defect_response,
    prepare_images_for_defect_detection,
    process_defects_for_tree,
    resolve_image_for_key,
)
from Tree_Inventory.errors import ResponseFormatError
from Tree_Inventory.records import BoundingBox, TreeEntity


def _pred(key: str, label: str, conf: float) -> DefectPrediction:
    return DefectPrediction(key=key, label=label, confidence=conf, x1=0.1, y1=0.2, x2=0.5, y2=0.6)


class _FakeDetector:
    def __init__(self, predictions: List[DefectPrediction]) -> None:
        self.predictions = predictions
        self.requests: List[Dict[str, str]] = []

    def detect(self, images: Dict[str, str]) -> List[DefectPrediction]:
        self.requests.append(images)
        return list(self.predictions)


class TestDefectParsing(unittest.TestCase):
    def test_list_and_object_forms(self) -> None:
        item = {"key": "tree_crop", "label": " crack ", "confidence": 0.7, "x1": 0, "y1": 0.1, "x2": 0.5, "y2": 1}
        for payload in ([item], {"defects": [item]}):
            preds = parse_defect_response(payload)
            self.assertEqual(len(preds), 1)
            self.assertEqual(preds[0].label, "crack")
            self.assertEqual(preds[0].as_box().as_xyxy(), (0.0, 0.1, 0.5, 1.0))

    def test_malformed(self) -> None:
        good = {"key": "tree_crop", "label": "crack", "confidence": 0.7, "x1": 0, "y1": 0, "x2": 1, "y2": 1}
        bad_payloads = [
            "nope",
            {"items": []},
            [1],
            [dict(good, key="")],
            [dict(good, label="  ")],
            [dict(good, confidence="0.7")],
            [dict(good, x2=None)],
        ]
        for payload in bad_payloads:
            with self.assertRaises(ResponseFormatError, msg=repr(payload)):
                parse_defect_response(payload)

    def test_filter_is_strict(self) -> None:
        preds = [_pred("tree_crop", "a", 0.25), _pred("tree_crop", "b", 0.2501), _pred("tree_crop", "c", 0.1)]
        self.assertEqual([p.label for p in filter_defects(preds)], ["b"])
        self.assertEqual([p.label for p in filter_defects(preds, 0.05)], ["a", "b", "c"])

    def test_resolve_keys(self) -> None:
        extra = ["x0.jpg", "x1.jpg"]
        self.assertEqual(resolve_image_for_key("tree_crop", "crop.jpg", extra), "crop.jpg")
        self.assertIsNone(resolve_image_for_key("tree_crop", None, extra))
        self.assertEqual(resolve_image_for_key("additional_1", "crop.jpg", extra), "x1.jpg")
        self.assertIsNone(resolve_image_for_key("additional_2", "crop.jpg", extra))
        self.assertIsNone(resolve_image_for_key("bark", "crop.jpg", extra))


class TestProcessDefects(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name)
        self.crop = self.root / "tree_crop.jpg"
        self.extra = self.root / "bark.jpg"
        cv2.imwrite(str(self.crop), np.full((100, 50, 3), 120, dtype=np.uint8))
        cv2.imwrite(str(self.extra), np.full((60, 80, 3), 30, dtype=np.uint8))
        self.tree = TreeEntity(
            id=7,
            image_path=str(self.root / "photo.jpg"),
            bounding_box=BoundingBox(0.1, 0.1, 0.3, 0.3),
            date_taken="2024-05-01",
            additional_images=[str(self.extra)],
            crop_path=str(self.crop),
        )

    def tearDown(self) -> None:
        self._td.cleanup()

    def test_prepare_images_keys(self) -> None:
        images = prepare_images_for_defect_detection(str(self.crop), [str(self.extra)])
        self.assertEqual(sorted(images), ["additional_0", "tree_crop"])

    def test_builds_defect_records(self) -> None:
        detector = _FakeDetector(
            [
                _pred("tree_crop", "crack", 0.9),
                _pred("additional_0", "cavity", 0.6),
                _pred("tree_crop", "noise", 0.1),
                _pred("additional_5", "ghost", 0.8),
            ]
        )
        defects = process_defects_for_tree(self.tree, detector, crop_dir=self.root / "crops")

        self.assertEqual(sorted(detector.requests[0]), ["additional_0", "tree_crop"])
        self.assertEqual([d.defect_type for d in defects], ["crack", "cavity"])
        self.assertEqual(defects[0].image_path, str(self.crop))
        self.assertEqual(defects[1].image_path, str(self.extra))
        for d in defects:
            self.assertEqual(d.tree_id, 7)
            self.assertIsNone(d.defect_id)
            self.assertEqual(d.as_xyxy(), (0.1, 0.2, 0.5, 0.6))
            self.assertTrue(Path(d.crop_path).exists())
        self.assertTrue(Path(defects[0].crop_path).name.startswith("defect_crack_7_0_"))
        # crop of (0.1, 0.2, 0.4, 0.4) on the 50x100 tree crop
        self.assertEqual(cv2.imread(defects[0].crop_path).shape[:2], (40, 20))

    def test_label_with_path_separator(self) -> None:
        crop_dir = self.root / "crops"
        detector = _FakeDetector([_pred("tree_crop", "crack/split", 0.9), _pred("tree_crop", "../escape", 0.8)])
        defects = process_defects_for_tree(self.tree, detector, crop_dir=crop_dir)

        self.assertEqual([d.defect_type for d in defects], ["crack/split", "../escape"])
        for d in defects:
            path = Path(d.crop_path)
            self.assertTrue(path.exists())
            self.assertEqual(path.parent, crop_dir)
        self.assertTrue(Path(defects[0].crop_path).name.startswith("defect_crack_split_7_0_"))

    def test_no_images_means_no_request(self) -> None:
        self.tree.crop_path = None
        self.tree.additional_images = []
        detector = _FakeDetector([_pred("tree_crop", "crack", 0.9)])
        self.assertEqual(process_defects_for_tree(self.tree, detector, crop_dir=self.root), [])
        self.assertEqual(detector.requests, [])

    def test_unsaved_tree_rejected(self) -> None:
        self.tree.id = None
        with self.assertRaises(ValueError):
            process_defects_for_tree(self.tree, _FakeDetector([]), crop_dir=self.root)


if __name__ == "__main__":
    unittest.main()
