import tempfile
import unittest
from pathlib import Path

import cv2
import numpy as np

from Tree_Inventory.assemble import assemble_tree_records, selected_detections, toggle_selection
from Tree_Inventory.errors import ValidationError
from tree_kit.types import NormalizedBox


def _det(identifier: str, x: float, selected: bool = True) -> NormalizedBox:
    return NormalizedBox(
        x=x,
        y=0.1,
        width=0.2,
        height=0.3,
        x_bottom_right=x + 0.2,
        y_bottom_right=0.4,
        confidence=0.9,
        selected=selected,
        identifier=identifier,
    )


class TestSelection(unittest.TestCase):
    def test_toggle_flips_only_target(self) -> None:
        dets = [_det("tree_1", 0.1), _det("tree_2", 0.5)]
        toggled = toggle_selection(dets, "tree_2")
        self.assertEqual([d.selected for d in toggled], [True, False])
        self.assertTrue(dets[1].selected)
        self.assertEqual([d.identifier for d in selected_detections(toggled)], ["tree_1"])
        again = toggle_selection(toggled, "tree_2")
        self.assertEqual([d.selected for d in again], [True, True])

    def test_toggle_unknown_identifier(self) -> None:
        with self.assertRaises(KeyError):
            toggle_selection([_det("tree_1", 0.1)], "tree_9")


class TestAssembleTreeRecords(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name)
        self.source = self.root / "photo.jpg"
        cv2.imwrite(str(self.source), np.full((200, 300, 3), 90, dtype=np.uint8))
        self.crop_dir = self.root / "crops"

    def tearDown(self) -> None:
        self._td.cleanup()

    def test_only_selected_become_records(self) -> None:
        dets = [_det("tree_1", 0.1), _det("tree_2", 0.4, selected=False), _det("tree_3", 0.7)]
        trees = assemble_tree_records(dets, self.source, crop_dir=self.crop_dir, captured_at="2024-05-01T10:00:00")
        self.assertEqual(len(trees), 2)
        self.assertEqual([t.bounding_box.x for t in trees], [0.1, 0.7])
        for t in trees:
            self.assertIsNone(t.id)
            self.assertEqual(t.image_path, str(self.source))
            self.assertEqual(t.date_taken, "2024-05-01T10:00:00")
            self.assertEqual(t.description, "")
            self.assertEqual(t.additional_images, [])
            self.assertTrue(Path(t.crop_path).exists())
        self.assertNotEqual(trees[0].crop_path, trees[1].crop_path)

    def test_records_share_one_timestamp(self) -> None:
        dets = [_det(f"tree_{i}", 0.1 * i) for i in range(1, 4)]
        trees = assemble_tree_records(dets, self.source, crop_dir=self.crop_dir)
        self.assertEqual(len({t.date_taken for t in trees}), 1)

    def test_nothing_selected(self) -> None:
        dets = [_det("tree_1", 0.1, selected=False)]
        with self.assertRaises(ValidationError):
            assemble_tree_records(dets, self.source, crop_dir=self.crop_dir)
        with self.assertRaises(ValidationError):
            assemble_tree_records([], self.source, crop_dir=self.crop_dir)

    def test_crop_failure_keeps_record(self) -> None:
        calls = []

        def flaky_cropper(image_path, det, *, out_dir, owner_id, tag):
            calls.append((owner_id, tag))
            if owner_id == "tree_1":
                raise OSError("disk full")
            return Path(out_dir) / f"{owner_id}.jpg"

        dets = [_det("tree_1", 0.1), _det("tree_2", 0.5)]
        trees = assemble_tree_records(dets, self.source, crop_dir=self.crop_dir, cropper=flaky_cropper)
        self.assertEqual(calls, [("tree_1", "tree_crop"), ("tree_2", "tree_crop")])
        self.assertIsNone(trees[0].crop_path)
        self.assertEqual(trees[1].crop_path, str(self.crop_dir / "tree_2.jpg"))


if __name__ == "__main__":
    unittest.main()
