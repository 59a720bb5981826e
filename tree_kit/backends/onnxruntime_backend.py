from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np

from ..errors import InferenceOutputError


PathLike = Union[str, Path]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Session options for the tree detector.

    - providers: ORT execution providers in priority order; None lets ORT pick
    - input_name/output_name: pin the tensors when the export has several
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_name: Optional[str] = None


def _static_dim(dim: Any) -> Optional[int]:
    # symbolic dims come back as strings ("batch") or None
    return dim if isinstance(dim, int) and dim > 0 else None


class OnnxRuntimeBackend:
    """
    Wraps one `onnxruntime.InferenceSession` for an end-to-end tree detector.

    The input must be NCHW with 3 channels and a square spatial side; when the
    side is fixed in the graph it is exposed as `static_input_size` so the
    caller can size its preprocessing to match. Each call returns the chosen
    output, normally (1, N, 6).
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required to load the tree detector. Install it with `pip install onnxruntime`."
            ) from e

        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(f"Tree detector not found: {self.model_path}")

        providers = list(cfg.providers) if cfg.providers is not None else None
        self.session = ort.InferenceSession(str(self.model_path), sess_options=ort.SessionOptions(), providers=providers)

        inputs = {i.name: i for i in self.session.get_inputs()}
        outputs = {o.name: o for o in self.session.get_outputs()}
        if not inputs or not outputs:
            raise InferenceOutputError(f"Model {self.model_path} must expose at least one input and one output")

        self.input_name = cfg.input_name or next(iter(inputs))
        self.output_name = cfg.output_name or next(iter(outputs))
        if self.input_name not in inputs:
            raise InferenceOutputError(f"Input {self.input_name!r} not found; model inputs: {sorted(inputs)}")
        if self.output_name not in outputs:
            raise InferenceOutputError(f"Output {self.output_name!r} not found; model outputs: {sorted(outputs)}")

        self.input_shape: Tuple[Any, ...] = tuple(inputs[self.input_name].shape)
        self.output_shape: Tuple[Any, ...] = tuple(outputs[self.output_name].shape)
        if len(self.input_shape) != 4 or _static_dim(self.input_shape[1]) not in (None, 3):
            raise InferenceOutputError(f"Expected an NCHW RGB input, model declares {self.input_shape}")

    @property
    def static_input_size(self) -> Optional[int]:
        h = _static_dim(self.input_shape[2])
        w = _static_dim(self.input_shape[3])
        if h is None or w is None or h != w:
            return None
        return h

    @property
    def providers_in_use(self) -> Sequence[str]:
        return tuple(self.session.get_providers())

    def describe(self) -> Dict[str, Any]:
        return {
            "model": str(self.model_path),
            "input": {"name": self.input_name, "shape": list(self.input_shape)},
            "output": {"name": self.output_name, "shape": list(self.output_shape)},
            "providers": list(self.providers_in_use),
        }

    def infer(self, blob: np.ndarray) -> np.ndarray:
        size = self.static_input_size
        if size is not None and tuple(blob.shape[2:]) != (size, size):
            raise ValueError(f"Blob shape {blob.shape} does not match model input side {size}")

        (preds,) = self.session.run([self.output_name], {self.input_name: np.ascontiguousarray(blob, dtype=np.float32)})
        if preds is None:
            raise InferenceOutputError(f"Model returned no value for output {self.output_name!r}")
        return preds
