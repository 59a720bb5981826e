"""HTTP client for the remote tree species classifier."""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union
from urllib import error, request

from .errors import RemoteServiceError, ResponseFormatError

PathLike = Union[str, Path]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassificationResult:
    label: Optional[str]
    confidence: Optional[float] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def image_to_base64(image_path: PathLike) -> str:
    p = Path(image_path)
    if not p.exists():
        raise FileNotFoundError(f"Image file does not exist: {p}")
    return base64.b64encode(p.read_bytes()).decode("ascii")


def parse_classification_response(payload: Any) -> ClassificationResult:
    if not isinstance(payload, dict):
        raise ResponseFormatError("Classification response must be a JSON object")

    label = payload.get("label")
    if label is not None and not isinstance(label, str):
        raise ResponseFormatError("label must be a string if provided")

    confidence = payload.get("confidence")
    if confidence is not None:
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            raise ResponseFormatError("confidence must be a number if provided")
        confidence = float(confidence)

    return ClassificationResult(label=label or None, confidence=confidence, raw=dict(payload))


def extract_taxon_name(result: ClassificationResult) -> Optional[str]:
    return result.label or None


def format_classification_result(result: ClassificationResult) -> str:
    return json.dumps(result.raw, indent=2, ensure_ascii=False)


def post_json(url: str, payload: Dict[str, Any], *, timeout_s: float) -> Any:
    data = json.dumps(payload).encode("utf-8")
    req = request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    try:
        with request.urlopen(req, timeout=timeout_s) as response:
            body = response.read().decode("utf-8")
    except error.HTTPError as exc:
        raise RemoteServiceError(f"HTTP error from {url}: status {exc.code}") from exc
    except (error.URLError, TimeoutError, OSError) as exc:
        raise RemoteServiceError(f"Could not reach {url}: {exc}") from exc

    try:
        return json.loads(body)
    except json.JSONDecodeError as exc:
        raise ResponseFormatError(f"Response from {url} is not valid JSON") from exc


class ClassificationClient:
    """Sends a tree crop to the classification endpoint and validates the answer."""

    def __init__(self, api_url: str, *, timeout_s: float = 30.0) -> None:
        if not api_url:
            raise ValueError("api_url must not be empty")
        self._api_url = api_url
        self._timeout_s = float(timeout_s)

    def classify(self, image_path: PathLike) -> ClassificationResult:
        # the endpoint accepts an optional region; the whole crop is sent
        payload = {
            "image_base64": image_to_base64(image_path),
            "x1": None,
            "y1": None,
            "x2": None,
            "y2": None,
        }
        logger.info("Classifying %s via %s", image_path, self._api_url)
        result = parse_classification_response(post_json(self._api_url, payload, timeout_s=self._timeout_s))
        logger.debug("Classification label=%r confidence=%r", result.label, result.confidence)
        return result
