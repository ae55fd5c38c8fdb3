# scanner_contracts.py

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np

Point2D = Tuple[float, float]

NO_DOCUMENT_MESSAGE = "No document found. Try a background with higher contrast."
SUCCESS_MESSAGE = "Document scanned successfully!"


class ScanStatus(str, Enum):
    OK = "ok"
    NO_DOCUMENT = "no_document"
    LOAD_FAILURE = "load_failure"
    INVALID_IMAGE = "invalid_image"
    DEGENERATE_GEOMETRY = "degenerate_geometry"


class ScanError(Exception):
    """Base class for failures that end a scan run. Subclasses set `status`."""

    status: ScanStatus


class LoadFailure(ScanError):
    status = ScanStatus.LOAD_FAILURE


class InvalidImage(ScanError):
    status = ScanStatus.INVALID_IMAGE


class DegenerateGeometry(ScanError):
    status = ScanStatus.DEGENERATE_GEOMETRY


@dataclass(frozen=True, slots=True)
class ScannerConfig:
    """
    Tunable thresholds of the detection pipeline.

    Defaults reproduce the reference behaviour. `min_contour_area` is an
    absolute pixel count and does not scale with image resolution.
    """

    blur_kernel_size: int = 5
    canny_low: float = 75
    canny_high: float = 200
    dilate_kernel_size: int = 5
    min_contour_area: float = 5000.0
    output_width: int = 1000
    output_height: int = 1414
    adaptive_block_size: int = 21
    adaptive_offset: float = 5

    def __post_init__(self) -> None:
        if self.blur_kernel_size < 1 or self.blur_kernel_size % 2 == 0:
            raise ValueError("blur_kernel_size must be a positive odd integer")
        if self.canny_low < 0 or self.canny_high < 0:
            raise ValueError("canny thresholds must be non-negative")
        if self.canny_low > self.canny_high:
            raise ValueError("canny_low must not exceed canny_high")
        if self.dilate_kernel_size < 1:
            raise ValueError("dilate_kernel_size must be >= 1")
        if self.min_contour_area < 0:
            raise ValueError("min_contour_area must be >= 0")
        if self.output_width <= 0 or self.output_height <= 0:
            raise ValueError("output size must be positive")
        if self.adaptive_block_size < 3 or self.adaptive_block_size % 2 == 0:
            raise ValueError("adaptive_block_size must be an odd integer >= 3")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class QuadCandidate:
    points: np.ndarray  # (4, 2) float32, minimum-area rectangle corners
    area: float  # convex hull area of the contour it came from


@dataclass(frozen=True, slots=True)
class OrderedQuad:
    tl: Point2D
    tr: Point2D
    br: Point2D
    bl: Point2D

    @classmethod
    def from_array(cls, rect: np.ndarray) -> "OrderedQuad":
        tl, tr, br, bl = (tuple(float(v) for v in p) for p in rect)
        return cls(tl=tl, tr=tr, br=br, bl=bl)

    def as_array(self) -> np.ndarray:
        return np.array([self.tl, self.tr, self.br, self.bl], dtype="float32")


@dataclass(frozen=True, slots=True)
class ScanResult:
    status: ScanStatus
    message: str
    original: Optional[np.ndarray] = None
    warped: Optional[np.ndarray] = None
    scanned: Optional[np.ndarray] = None
    corners: Optional[OrderedQuad] = None
    transform: Optional[np.ndarray] = None
    debug_images: Dict[str, np.ndarray] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == ScanStatus.OK
