"""Simulated host -- an in-process device backed by a tree dump.

``SimDevice`` implements every host capability (tree provider, gesture
dispatcher, global actions, screen geometry) over a ``TreeNode`` tree
loaded from a YAML or JSON dump, and records what the core asked it to do.
``SimPrivilegedTapper`` plays the optional privileged tap service.

Dump format::

    screen: {width: 1080, height: 2400}
    root:
      class: android.widget.FrameLayout
      bounds: [0, 0, 1080, 2400]
      children:
        - {class: android.widget.TextView, text: Skip, bounds: [900, 80, 1040, 140]}
"""

from __future__ import annotations

import dataclasses
import logging
import random
from pathlib import Path
from typing import Any

import yaml

from treetap.engine.node import TreeNode
from treetap.engine.protocols import Gesture, ServiceContext
from treetap.models import DEFAULT_SCREEN_SIZE, DEFAULT_TAP_TIMEOUT_MS

logger = logging.getLogger("treetap.engine.sim_device")


@dataclasses.dataclass
class TapRecord:
    x: float
    y: float
    duration: int | None = None


class SimPrivilegedTapper:
    """Privileged tap service double.  ``available=False`` answers ``None``."""

    def __init__(self, available: bool = True, result: bool = True) -> None:
        self.available = available
        self.result = result
        self.taps: list[TapRecord] = []

    def tap(self, x: float, y: float) -> bool | None:
        if not self.available:
            return None
        self.taps.append(TapRecord(x, y))
        return self.result

    def long_tap(self, x: float, y: float, duration: int) -> bool | None:
        if not self.available:
            return None
        self.taps.append(TapRecord(x, y, duration))
        return self.result


class SimDevice:
    """In-process device serving a fixed node tree."""

    def __init__(
        self,
        root: TreeNode | None,
        screen: tuple[float, float] = DEFAULT_SCREEN_SIZE,
        back_result: bool = True,
    ) -> None:
        self._root = root
        self._screen = (float(screen[0]), float(screen[1]))
        self.back_result = back_result
        self.gestures: list[Gesture] = []
        self.back_presses = 0

    # -- Loading -------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any], screen: tuple[float, float] | None = None) -> SimDevice:
        if not isinstance(data, dict):
            raise ValueError("tree dump must be a mapping")
        if "root" in data:
            root_data = data["root"]
            dump_screen = data.get("screen") or {}
            if not isinstance(dump_screen, dict):
                raise ValueError("tree dump 'screen' must be a mapping with width and height")
        else:
            root_data = data
            dump_screen = {}
        if screen is None:
            screen = (
                dump_screen.get("width", DEFAULT_SCREEN_SIZE[0]),
                dump_screen.get("height", DEFAULT_SCREEN_SIZE[1]),
            )
        root = TreeNode.from_dict(root_data) if root_data is not None else None
        return cls(root, screen=screen)

    @classmethod
    def from_file(cls, path: Path, screen: tuple[float, float] | None = None) -> SimDevice:
        """Load a YAML or JSON tree dump (JSON is valid YAML)."""
        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ValueError(f"invalid tree dump {path}: {exc}") from exc
        logger.debug("Loaded tree dump %s", path)
        return cls.from_dict(data, screen=screen)

    # -- Host capabilities -----------------------------------------------------

    def root(self) -> TreeNode | None:
        return self._root

    def set_root(self, root: TreeNode | None) -> None:
        self._root = root

    def size(self) -> tuple[float, float]:
        return self._screen

    def dispatch(self, gesture: Gesture) -> bool:
        self.gestures.append(gesture)
        logger.debug("Gesture dispatched: start=%s end=%s %dms", gesture.path.start, gesture.path.end, gesture.duration)
        return True

    def back(self) -> bool:
        self.back_presses += 1
        return self.back_result

    def context(
        self,
        privileged: SimPrivilegedTapper | None = None,
        tap_timeout: int = DEFAULT_TAP_TIMEOUT_MS,
        seed: int | None = None,
    ) -> ServiceContext:
        """A ``ServiceContext`` wired to this device."""
        return ServiceContext(
            tree=self,
            gestures=self,
            global_actions=self,
            screen=self,
            privileged=privileged,
            tap_timeout=tap_timeout,
            rng=random.Random(seed),
        )
