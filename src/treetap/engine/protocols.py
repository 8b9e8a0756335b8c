"""Host capability protocols.

These protocols define the contract between the treetap core (matcher,
action performers, executor) and the host that owns the UI surface: the
accessibility framework supplying the node tree, the gesture dispatcher,
global navigation, screen geometry, and an optional privileged tap service.
Hosts inject implementations through ``ServiceContext``; nothing in the core
reaches for a global service instance.
"""

from __future__ import annotations

import dataclasses
import random
from typing import Iterable, Protocol, Sequence, runtime_checkable

from treetap.models import DEFAULT_TAP_TIMEOUT_MS


@dataclasses.dataclass(frozen=True)
class Rect:
    """Screen-space bounding rectangle."""

    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def center(self) -> tuple[float, float]:
        return (self.left + self.right) / 2, (self.top + self.bottom) / 2

    @classmethod
    def from_list(cls, values: Sequence[float]) -> Rect:
        if len(values) != 4:
            raise ValueError(f"bounds must have 4 values, got {len(values)}")
        left, top, right, bottom = (float(v) for v in values)
        return cls(left, top, right, bottom)

    def as_list(self) -> list[float]:
        return [self.left, self.top, self.right, self.bottom]


# ---------------------------------------------------------------------------
# Gestures
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class PathSegment:
    """One path segment.  ``kind`` is ``"move"`` or ``"quad"``."""

    kind: str
    points: tuple[tuple[float, float], ...]


@dataclasses.dataclass
class GesturePath:
    """A touch path built from ``move_to`` and ``quad_to`` segments."""

    segments: list[PathSegment] = dataclasses.field(default_factory=list)

    def move_to(self, x: float, y: float) -> GesturePath:
        self.segments.append(PathSegment("move", ((x, y),)))
        return self

    def quad_to(self, cx: float, cy: float, x: float, y: float) -> GesturePath:
        self.segments.append(PathSegment("quad", ((cx, cy), (x, y))))
        return self

    @property
    def start(self) -> tuple[float, float] | None:
        if not self.segments:
            return None
        return self.segments[0].points[0]

    @property
    def end(self) -> tuple[float, float] | None:
        if not self.segments:
            return None
        return self.segments[-1].points[-1]

    def sample(self, steps: int = 16) -> list[tuple[float, float]]:
        """Flatten the path into a polyline, ``steps`` points per curve.

        Backends that only accept point lists (e.g. ``input swipe`` style
        injectors) use this instead of walking the segments themselves.
        """
        out: list[tuple[float, float]] = []
        cursor: tuple[float, float] | None = None
        for seg in self.segments:
            if seg.kind == "move":
                cursor = seg.points[0]
                out.append(cursor)
                continue
            (cx, cy), (ex, ey) = seg.points
            sx, sy = cursor if cursor is not None else (cx, cy)
            for i in range(1, steps + 1):
                t = i / steps
                u = 1 - t
                out.append((
                    u * u * sx + 2 * u * t * cx + t * t * ex,
                    u * u * sy + 2 * u * t * cy + t * t * ey,
                ))
            cursor = (ex, ey)
        return out


@dataclasses.dataclass
class Gesture:
    """A single-stroke gesture: a path plus timing in milliseconds."""

    path: GesturePath
    duration: int
    start_time: int = 0


# ---------------------------------------------------------------------------
# Capability interfaces
# ---------------------------------------------------------------------------

@runtime_checkable
class UINode(Protocol):
    """A node in the host's UI tree.

    Attributes are read-only from the core's point of view.  ``children``
    must be in index order; ``parent`` is ``None`` for the root.
    """

    class_name: str
    text: str | None
    desc: str | None
    view_id: str | None
    bounds: Rect
    clickable: bool
    long_clickable: bool
    checkable: bool
    checked: bool
    focusable: bool
    visible_to_user: bool

    @property
    def parent(self) -> UINode | None: ...

    @property
    def children(self) -> Sequence[UINode]: ...

    def perform_click(self) -> bool: ...

    def perform_long_click(self) -> bool: ...


@runtime_checkable
class IndexedNode(Protocol):
    """Optional lookup capabilities used by the fast query path.

    Results must be in pre-order traversal order beneath the receiver
    (the receiver included).
    """

    def find_by_view_id(self, view_id: str) -> Iterable[UINode]: ...

    def find_by_text(self, text: str) -> Iterable[UINode]: ...


@runtime_checkable
class TreeProvider(Protocol):
    """Supplies the root of the active window, or ``None`` if unavailable."""

    def root(self) -> UINode | None: ...


@runtime_checkable
class GlobalActions(Protocol):
    def back(self) -> bool: ...


@runtime_checkable
class GestureDispatcher(Protocol):
    """Dispatches a gesture.  Returns once dispatch is requested."""

    def dispatch(self, gesture: Gesture) -> bool: ...


@runtime_checkable
class PrivilegedTapper(Protocol):
    """Out-of-process tap injection.

    Both methods return ``True``/``False`` for a definite result and ``None``
    when the service is not available right now.
    """

    def tap(self, x: float, y: float) -> bool | None: ...

    def long_tap(self, x: float, y: float, duration: int) -> bool | None: ...


@runtime_checkable
class ScreenGeometry(Protocol):
    def size(self) -> tuple[float, float]: ...


@dataclasses.dataclass
class ServiceContext:
    """Everything an action performer or executor needs from the host."""

    tree: TreeProvider
    gestures: GestureDispatcher
    global_actions: GlobalActions
    screen: ScreenGeometry
    privileged: PrivilegedTapper | None = None
    tap_timeout: int = DEFAULT_TAP_TIMEOUT_MS  # ms
    rng: random.Random = dataclasses.field(default_factory=random.Random)
