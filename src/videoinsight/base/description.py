from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class BoundingBox:
    """Axis-aligned box with coordinates normalized to [0, 1] of the image size.

    Attributes:
        x: Left edge
        y: Top edge
        width: Box width
        height: Box height
    """

    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def area(self) -> float:
        return self.width * self.height

    def to_dict(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BoundingBox:
        return cls(
            x=float(data["x"]),
            y=float(data["y"]),
            width=float(data["width"]),
            height=float(data["height"]),
        )


@dataclass
class DetectedObject:
    """An object found in a frame.

    Attributes:
        label: Class name, e.g. "person"
        confidence: Detection score in [0, 1]
        bounding_box: Location in the frame, if the detector reports one
    """

    label: str
    confidence: float
    bounding_box: BoundingBox | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "confidence": self.confidence,
            "bounding_box": self.bounding_box.to_dict() if self.bounding_box else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DetectedObject:
        bbox = data.get("bounding_box")
        return cls(
            label=data["label"],
            confidence=float(data["confidence"]),
            bounding_box=BoundingBox.from_dict(bbox) if bbox else None,
        )
