import tempfile
import unittest
from pathlib import Path
from unittest import mock

import cv2
import numpy as np

from tree_kit.errors import DecodeError
from tree_kit.preprocess import preprocess_array, preprocess_image


class TestPreprocess(unittest.TestCase):
    def test_shape_and_range(self) -> None:
        rng = np.random.default_rng(0)
        for h, w in ((480, 640), (1000, 333), (17, 9)):
            img = rng.integers(0, 256, size=(h, w, 3), dtype=np.uint8)
            t = preprocess_array(img)
            self.assertEqual(t.shape, (1, 3, 640, 640))
            self.assertEqual(t.data.size, 3 * 640 * 640)
            self.assertEqual(t.data.dtype, np.float32)
            self.assertGreaterEqual(float(t.data.min()), 0.0)
            self.assertLessEqual(float(t.data.max()), 1.0)
            self.assertEqual(t.orig_size, (w, h))
            self.assertEqual(t.as_blob().shape, (1, 3, 640, 640))

    def test_channel_order_is_rgb_planes(self) -> None:
        img = np.zeros((20, 30, 3), dtype=np.uint8)
        img[:, :, 2] = 255  # red in BGR
        t = preprocess_array(img, input_size=32)
        plane = 32 * 32
        self.assertTrue(np.allclose(t.data[:plane], 1.0))
        self.assertTrue(np.allclose(t.data[plane:], 0.0))

    def test_alpha_is_dropped(self) -> None:
        img = np.zeros((8, 8, 4), dtype=np.uint8)
        img[:, :, 1] = 255
        img[:, :, 3] = 0
        t = preprocess_array(img, input_size=16)
        blob = t.as_blob()
        self.assertTrue(np.allclose(blob[0, 1], 1.0))
        self.assertTrue(np.allclose(blob[0, 0], 0.0))
        self.assertTrue(np.allclose(blob[0, 2], 0.0))

    def test_grayscale_and_16bit(self) -> None:
        gray = np.full((10, 10), 128, dtype=np.uint8)
        t = preprocess_array(gray, input_size=8)
        self.assertTrue(np.allclose(t.data, 128 / 255.0))

        deep = np.full((10, 10, 3), 65535, dtype=np.uint16)
        t = preprocess_array(deep, input_size=8)
        self.assertTrue(np.allclose(t.data, 1.0))

    def test_unsupported_dtype(self) -> None:
        with self.assertRaises(DecodeError):
            preprocess_array(np.zeros((4, 4, 3), dtype=np.float32))

    def test_wrong_resize_output_raises(self) -> None:
        img = np.zeros((10, 10, 3), dtype=np.uint8)
        with mock.patch("tree_kit.preprocess.cv2.resize", return_value=np.zeros((5, 5, 3), dtype=np.uint8)):
            with self.assertRaises(DecodeError):
                preprocess_array(img)

    def test_from_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "rgba.png"
            img = np.zeros((12, 24, 4), dtype=np.uint8)
            img[:, :, 0] = 255
            img[:, :, 3] = 255
            self.assertTrue(cv2.imwrite(str(path), img))
            t = preprocess_image(path, input_size=64)
            self.assertEqual(t.shape, (1, 3, 64, 64))
            self.assertEqual(t.orig_size, (24, 12))
            self.assertTrue(np.allclose(t.as_blob()[0, 2], 1.0))

    def test_missing_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(FileNotFoundError):
                preprocess_image(Path(td) / "nope.jpg")


if __name__ == "__main__":
    unittest.main()
