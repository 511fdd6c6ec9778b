"""Domain entities (data-only structures) shared by the session services."""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Dict, Any

import numpy as np

from .constants import PROMPT_IDLE

Size = Tuple[int, int]  # (width, height)
Point = Tuple[float, float]  # (x, y) in pixel space, top-left origin


@dataclass(frozen=True, slots=True)
class NormalizedBox:
    """Detector box in the unit square, origin bottom-left."""
    x: float
    y: float
    w: float
    h: float

    @property
    def is_degenerate(self) -> bool:
        return self.w <= 0 or self.h <= 0


@dataclass(frozen=True, slots=True)
class NormalizedPoint:
    """Landmark point relative to its parent box, origin bottom-left."""
    x: float
    y: float


@dataclass(frozen=True, slots=True)
class Subject:
    box: NormalizedBox
    landmarks: Dict[str, Tuple[NormalizedPoint, ...]] = field(default_factory=dict)
    score: float = 1.0

    def landmark_group(self, name: str) -> Tuple[NormalizedPoint, ...]:
        return self.landmarks.get(name, ())


@dataclass(frozen=True, slots=True)
class DetectionResult:
    subjects: Tuple[Subject, ...] = ()
    timestamp: float = 0.0

    @property
    def primary(self) -> Optional[Subject]:
        """The only subject considered downstream: the first one reported."""
        return self.subjects[0] if self.subjects else None


@dataclass(frozen=True, slots=True)
class ScreenRect:
    """Pixel-space rectangle, origin top-left."""
    x: float
    y: float
    w: float
    h: float

    @property
    def is_empty(self) -> bool:
        return self.w <= 0 or self.h <= 0

    @property
    def x2(self) -> float:
        return self.x + self.w

    @property
    def y2(self) -> float:
        return self.y + self.h

    @property
    def center(self) -> Point:
        return (self.x + self.w / 2.0, self.y + self.h / 2.0)

    def contains(self, other: "ScreenRect") -> bool:
        if self.is_empty or other.is_empty:
            return False
        return (other.x >= self.x and other.y >= self.y
                and other.x2 <= self.x2 and other.y2 <= self.y2)

    def contains_point(self, point: Point) -> bool:
        px, py = point
        return self.x <= px <= self.x2 and self.y <= py <= self.y2

    def inset(self, dx: float, dy: float) -> "ScreenRect":
        return ScreenRect(self.x + dx, self.y + dy, self.w - 2 * dx, self.h - 2 * dy)

    def as_int_tuple(self) -> Tuple[int, int, int, int]:
        return (int(round(self.x)), int(round(self.y)), int(round(self.w)), int(round(self.h)))


class RegionKind(Enum):
    RECT = "rect"
    ELLIPSE = "ellipse"
    POLYGON = "polygon"
    RASTER = "raster"


@dataclass(frozen=True, eq=False)
class ScreenRegion:
    """Region derived from a subject, used for the overlay and alignment tests."""
    kind: RegionKind
    bounds: ScreenRect
    viewport: Size
    polygon: Optional[np.ndarray] = None  # (N, 2) float32, closed implicitly
    alpha: Optional[np.ndarray] = None  # (H, W) float32 in viewport space
    subject_box: Optional[ScreenRect] = None
    markers: Tuple[Point, ...] = ()

    @property
    def is_usable(self) -> bool:
        return not self.bounds.is_empty


@dataclass(slots=True)
class FrameSample:
    image: np.ndarray  # BGR
    timestamp: float

    @property
    def size(self) -> Size:
        h, w = self.image.shape[:2]
        return (w, h)


@dataclass(frozen=True, eq=False)
class RasterMask:
    """Per-pixel subject opacity, float32 in [0, 1], shape (H, W)."""
    alpha: np.ndarray

    @property
    def width(self) -> int:
        return int(self.alpha.shape[1])

    @property
    def height(self) -> int:
        return int(self.alpha.shape[0])

    @property
    def size(self) -> Size:
        return (self.width, self.height)


@dataclass(slots=True)
class CaptureResult:
    image: Optional[np.ndarray]
    error: Optional[str] = None
    timestamp: float = 0.0

    @property
    def ok(self) -> bool:
        return self.image is not None and self.error is None


@dataclass(slots=True)
class CompositeResult:
    shot_index: int
    composite: np.ndarray  # BGR uint8
    mask_used: RasterMask
    fresh_mask: Optional[RasterMask] = None
    grayscale: Optional[np.ndarray] = None
    pixel_matrix: Optional[np.ndarray] = None  # row-major uint8 (H, W)
    saved_paths: Tuple[Any, ...] = ()
    persistence_error: Optional[str] = None


class Phase(Enum):
    IDLE = "idle"
    ARMED = "armed"
    TRACKING = "tracking"
    COUNTDOWN = "countdown"
    CAPTURING = "capturing"
    PROCESSING = "processing"
    COMPLETED = "completed"


@dataclass(frozen=True)
class SessionState:
    """Single source of truth for a session; replaced, never mutated in place."""
    phase: Phase = Phase.IDLE
    shot_index: int = 0
    can_detect: bool = False
    countdown: int = 0
    stored_mask: Optional[RasterMask] = None
    stored_geometry: Optional[ScreenRegion] = None
    region: Optional[ScreenRegion] = None
    framing: Optional[ScreenRegion] = None
    prompt: str = PROMPT_IDLE
    error: Optional[str] = None

    @property
    def is_waiting_for_subject(self) -> bool:
        return self.phase in (Phase.ARMED, Phase.TRACKING)
