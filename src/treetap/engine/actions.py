"""Action performers -- what happens to a matched node.

Every action is a tag in ``ActionKind``; ``perform()`` is the single
dispatch point.  Composite actions are plain composition: ``click`` tries
``clickNode`` and degrades to ``clickCenter``, ``longClick`` does the same
with the long-click pair.

Coordinate actions (``clickCenter`` / ``longClickCenter``) prefer the
privileged tap service when the host provides one and it answers; a
``None`` answer means "not available" and falls through to a synthesized
gesture.  Gesture dispatch is fire-and-forget: the outcome reports that
dispatch was requested, not that the gesture finished.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
from typing import Any

from treetap.engine.errors import ActionDispatchFailure, ExecutionError, OutOfBoundsError
from treetap.engine.position import PositionDescriptor, resolve
from treetap.engine.protocols import Gesture, GesturePath, ServiceContext, UINode
from treetap.models import LONG_CLICK_DURATION_MS, SCROLL_DURATION_BASE_MS, SCROLL_DURATION_JITTER_MS

logger = logging.getLogger("treetap.engine.actions")


class ActionKind(str, enum.Enum):
    CLICK_NODE = "clickNode"
    CLICK_CENTER = "clickCenter"
    CLICK = "click"
    LONG_CLICK_NODE = "longClickNode"
    LONG_CLICK_CENTER = "longClickCenter"
    LONG_CLICK = "longClick"
    BACK = "back"
    NONE = "none"
    SCROLL_UP = "scrollUp"

    @classmethod
    def lookup(cls, name: str | None) -> ActionKind:
        """Action for ``name``; unknown or missing names mean ``click``."""
        for kind in cls:
            if kind.value == name:
                return kind
        return cls.CLICK

    @classmethod
    def names(cls) -> list[str]:
        return [kind.value for kind in cls]


@dataclasses.dataclass(frozen=True)
class ActionOutcome:
    """Result of one action performer call."""

    action: str
    succeeded: bool
    via_privileged_path: bool = False
    resolved_position: tuple[float, float] | None = None
    error: ExecutionError | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "succeeded": self.succeeded,
            "via_privileged_path": self.via_privileged_path,
            "resolved_position": list(self.resolved_position) if self.resolved_position else None,
            "error": str(self.error) if self.error else None,
        }


# ---------------------------------------------------------------------------
# Primitive variants
# ---------------------------------------------------------------------------

def _node_action(kind: ActionKind, node: UINode, long_press: bool) -> ActionOutcome:
    try:
        ok = node.perform_long_click() if long_press else node.perform_click()
    except Exception as exc:
        raise ActionDispatchFailure(f"{kind.value} on node failed: {exc}") from exc
    return ActionOutcome(action=kind.value, succeeded=bool(ok))


def _privileged_tap(context: ServiceContext, x: float, y: float, duration: int | None) -> bool | None:
    """Ask the privileged service to tap; ``None`` means it is unavailable."""
    service = context.privileged
    if service is None:
        return None
    try:
        if duration is None:
            return service.tap(x, y)
        return service.long_tap(x, y, duration)
    except Exception as exc:
        logger.warning("Privileged tap at (%.1f, %.1f) failed, falling back to gesture: %s", x, y, exc)
        return None


def _dispatch(context: ServiceContext, gesture: Gesture) -> bool:
    try:
        return bool(context.gestures.dispatch(gesture))
    except Exception as exc:
        raise ActionDispatchFailure(f"gesture dispatch failed: {exc}") from exc


def _tap_at(
    kind: ActionKind,
    context: ServiceContext,
    node: UINode,
    position: PositionDescriptor | None,
    long_press: bool,
) -> ActionOutcome:
    x, y = resolve(position, node.bounds)
    width, height = context.screen.size()
    if not (0 <= x <= width and 0 <= y <= height):
        logger.info("%s skipped: (%.1f, %.1f) outside %gx%g screen", kind.value, x, y, width, height)
        return ActionOutcome(
            action=kind.value,
            succeeded=False,
            resolved_position=(x, y),
            error=OutOfBoundsError(x, y, width, height),
        )

    duration = LONG_CLICK_DURATION_MS if long_press else context.tap_timeout
    privileged = _privileged_tap(context, x, y, duration if long_press else None)
    if privileged is not None:
        return ActionOutcome(
            action=kind.value,
            succeeded=bool(privileged),
            via_privileged_path=True,
            resolved_position=(x, y),
        )

    gesture = Gesture(path=GesturePath().move_to(x, y), duration=duration)
    _dispatch(context, gesture)
    return ActionOutcome(action=kind.value, succeeded=True, resolved_position=(x, y))


def _scroll_up(context: ServiceContext) -> ActionOutcome:
    """Upward swipe with a curved path and randomized endpoints/timing."""
    rng = context.rng
    width, height = context.screen.size()

    start_x = width * (0.25 + rng.random() * 0.1)
    start_y = height * (0.75 + rng.random() * 0.1)
    bias = rng.random() * 0.3
    end_x = start_x + width * bias
    end_y = height * (0.2 + rng.random() * 0.1)
    control_x = (start_x + end_x) / 2 + width * bias * 0.5 * (rng.random() - 0.5)
    control_y = (start_y + end_y) / 2

    path = GesturePath().move_to(start_x, start_y).quad_to(control_x, control_y, end_x, end_y)
    duration = SCROLL_DURATION_BASE_MS + rng.randrange(SCROLL_DURATION_JITTER_MS)
    ok = _dispatch(context, Gesture(path=path, duration=duration))
    return ActionOutcome(action=ActionKind.SCROLL_UP.value, succeeded=ok)


def _with_name(outcome: ActionOutcome, kind: ActionKind) -> ActionOutcome:
    return dataclasses.replace(outcome, action=kind.value)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def perform(
    kind: ActionKind,
    context: ServiceContext,
    node: UINode,
    position: PositionDescriptor | None = None,
) -> ActionOutcome:
    """Run action ``kind`` on ``node``.

    Raises ``ActionDispatchFailure`` only when the last path of an action
    fails outright; failed node actions inside ``click``/``longClick``
    degrade to the coordinate path instead.
    """
    if kind is ActionKind.CLICK_NODE:
        return _node_action(kind, node, long_press=False)

    if kind is ActionKind.CLICK_CENTER:
        return _tap_at(kind, context, node, position, long_press=False)

    if kind is ActionKind.CLICK:
        if node.clickable:
            try:
                outcome = _node_action(ActionKind.CLICK_NODE, node, long_press=False)
                if outcome.succeeded:
                    return _with_name(outcome, kind)
            except ActionDispatchFailure as exc:
                logger.debug("clickNode raised, degrading to clickCenter: %s", exc)
        return _with_name(_tap_at(ActionKind.CLICK_CENTER, context, node, position, long_press=False), kind)

    if kind is ActionKind.LONG_CLICK_NODE:
        return _node_action(kind, node, long_press=True)

    if kind is ActionKind.LONG_CLICK_CENTER:
        return _tap_at(kind, context, node, position, long_press=True)

    if kind is ActionKind.LONG_CLICK:
        if node.long_clickable:
            try:
                outcome = _node_action(ActionKind.LONG_CLICK_NODE, node, long_press=True)
                if outcome.succeeded:
                    return _with_name(outcome, kind)
            except ActionDispatchFailure as exc:
                logger.debug("longClickNode raised, degrading to longClickCenter: %s", exc)
        return _with_name(
            _tap_at(ActionKind.LONG_CLICK_CENTER, context, node, position, long_press=True), kind
        )

    if kind is ActionKind.BACK:
        try:
            ok = context.global_actions.back()
        except Exception as exc:
            raise ActionDispatchFailure(f"back failed: {exc}") from exc
        return ActionOutcome(action=kind.value, succeeded=bool(ok))

    if kind is ActionKind.NONE:
        return ActionOutcome(action=kind.value, succeeded=True)

    if kind is ActionKind.SCROLL_UP:
        return _scroll_up(context)

    raise ValueError(f"unhandled action kind: {kind!r}")


def perform_named(
    name: str | None,
    context: ServiceContext,
    node: UINode,
    position: PositionDescriptor | None = None,
) -> ActionOutcome:
    return perform(ActionKind.lookup(name), context, node, position)
