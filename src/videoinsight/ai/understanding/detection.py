"""Object detection and text recognition backends for keyframes."""

from __future__ import annotations

import logging
from typing import Any

import numpy as np
from PIL import Image

from videoinsight.ai._device import resolve_device
from videoinsight.base.description import BoundingBox, DetectedObject

logger = logging.getLogger(__name__)


def _to_array(image: np.ndarray | Image.Image) -> np.ndarray:
    if isinstance(image, Image.Image):
        return np.array(image.convert("RGB"))
    return image


class ObjectDetector:
    """Detects objects in images using YOLO."""

    def __init__(
        self,
        model_size: str = "n",
        confidence_threshold: float = 0.25,
        device: str | None = None,
    ):
        """Load the YOLO model.

        Args:
            model_size: YOLO model size ('n', 's', 'm', 'l', 'x').
            confidence_threshold: Minimum confidence for detections (0-1).
            device: "cpu", "cuda", "mps" or None for automatic selection.
        """
        from ultralytics import YOLO

        self.model_size = model_size
        self.confidence_threshold = confidence_threshold
        self.device = resolve_device("ObjectDetector", device, mps_allowed=True)
        self._model: Any = YOLO(f"yolo11{model_size}.pt")

    def detect(self, image: np.ndarray | Image.Image) -> list[DetectedObject]:
        """Detect objects in an image.

        Args:
            image: Image as numpy array (H, W, 3) in RGB format or PIL Image.

        Returns:
            Detections with bounding boxes normalized to [0, 1], highest confidence first.
        """
        img_array = _to_array(image)

        detected_objects: list[DetectedObject] = []
        for result in self._model(img_array, conf=self.confidence_threshold, device=self.device, verbose=False):
            if result.boxes is None:
                continue
            height, width = result.orig_shape
            rows = zip(result.boxes.xyxy.tolist(), result.boxes.conf.tolist(), result.boxes.cls.tolist())
            for (left, top, right, bottom), score, class_index in rows:
                detected_objects.append(
                    DetectedObject(
                        label=str(self._model.names[int(class_index)]),
                        confidence=min(max(float(score), 0.0), 1.0),
                        bounding_box=BoundingBox(
                            x=left / width,
                            y=top / height,
                            width=(right - left) / width,
                            height=(bottom - top) / height,
                        ),
                    )
                )

        detected_objects.sort(key=lambda obj: obj.confidence, reverse=True)
        return detected_objects


class TextRecognizer:
    """Recognizes on-screen text using EasyOCR."""

    def __init__(
        self,
        languages: list[str] | None = None,
        confidence_threshold: float = 0.0,
        device: str | None = None,
    ):
        """Load the EasyOCR reader.

        Args:
            languages: EasyOCR language codes (default: ['ch_sim', 'en']).
            confidence_threshold: Drop fragments recognized below this confidence (0-1).
            device: "cpu", "cuda" or None for automatic selection.
        """
        import easyocr

        self.languages = languages or ["ch_sim", "en"]
        self.confidence_threshold = confidence_threshold
        self.device = resolve_device("TextRecognizer", device, mps_allowed=False)
        self._reader: Any = easyocr.Reader(self.languages, gpu=self.device == "cuda", verbose=False)

    def recognize(self, image: np.ndarray | Image.Image) -> str:
        """Recognize text in an image.

        Args:
            image: Image as numpy array (H, W, 3) in RGB format or PIL Image.

        Returns:
            Recognized fragments in reading order joined by spaces, or "" if none.
        """
        results = self._reader.readtext(_to_array(image))
        # Each result is [bbox, text, confidence]
        fragments = [
            text.strip() for _, text, confidence in results if text.strip() and confidence >= self.confidence_threshold
        ]
        return " ".join(fragments)
