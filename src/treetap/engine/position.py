"""Position resolution -- where inside a node's bounds a tap lands.

A ``PositionDescriptor`` carries up to four offsets (``left``, ``top``,
``right``, ``bottom``).  Numeric offsets are fractions of the bounds'
width/height; string offsets are arithmetic expressions over ``width`` and
``height`` that evaluate to a pixel offset, e.g. ``"width - 24"``.

``resolve()`` never fails: no descriptor means the center, an axis with no
offset uses the center coordinate, and an expression that cannot be
evaluated (division by zero, overflow) falls back to the center for that axis.
"""

from __future__ import annotations

import ast
import dataclasses
import logging
import operator
from typing import Any, Union

from treetap.engine.errors import ParseError
from treetap.engine.protocols import Rect

logger = logging.getLogger("treetap.engine.position")

Offset = Union[float, str, None]

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}
_NAMES = ("width", "height")


def _check_expression(source: str) -> ast.Expression:
    """Parse ``source`` and reject anything beyond + - * /, numbers and names."""
    try:
        tree = ast.parse(source.strip(), mode="eval")
    except SyntaxError as exc:
        raise ParseError(f"invalid position expression: {source!r}", source, exc.offset) from exc

    for node in ast.walk(tree):
        if isinstance(node, (ast.Expression, ast.BinOp, ast.UnaryOp, ast.Load)):
            continue
        if isinstance(node, tuple(_BINARY_OPS)) or isinstance(node, (ast.USub, ast.UAdd)):
            continue
        if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) \
                and not isinstance(node.value, bool):
            continue
        if isinstance(node, ast.Name) and node.id in _NAMES:
            continue
        raise ParseError(
            f"unsupported element {type(node).__name__} in position expression: {source!r}",
            source,
            getattr(node, "col_offset", None),
        )
    return tree


def _evaluate(node: ast.AST, width: float, height: float) -> float:
    if isinstance(node, ast.Expression):
        return _evaluate(node.body, width, height)
    if isinstance(node, ast.Constant):
        return float(node.value)
    if isinstance(node, ast.Name):
        return width if node.id == "width" else height
    if isinstance(node, ast.UnaryOp):
        value = _evaluate(node.operand, width, height)
        return -value if isinstance(node.op, ast.USub) else value
    if isinstance(node, ast.BinOp):
        op = _BINARY_OPS[type(node.op)]
        return op(_evaluate(node.left, width, height), _evaluate(node.right, width, height))
    raise TypeError(f"unexpected expression node {type(node).__name__}")


@dataclasses.dataclass(frozen=True)
class PositionDescriptor:
    """Offsets biasing where inside a node's bounds an action lands."""

    left: Offset = None
    top: Offset = None
    right: Offset = None
    bottom: Offset = None
    _compiled: dict[str, ast.Expression] = dataclasses.field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        for name in ("left", "top", "right", "bottom"):
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, bool):
                raise ParseError(f"position.{name} must be a number or expression, got {value!r}")
            if isinstance(value, str):
                self._compiled[name] = _check_expression(value)
            elif not isinstance(value, (int, float)):
                raise ParseError(f"position.{name} must be a number or expression, got {value!r}")

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PositionDescriptor | None:
        if data is None:
            return None
        if not isinstance(data, dict):
            raise ParseError(f"position must be a mapping, got {type(data).__name__}")
        unknown = set(data) - {"left", "top", "right", "bottom"}
        if unknown:
            raise ParseError(f"unknown position keys: {', '.join(sorted(unknown))}")
        return cls(
            left=data.get("left"),
            top=data.get("top"),
            right=data.get("right"),
            bottom=data.get("bottom"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            name: getattr(self, name)
            for name in ("left", "top", "right", "bottom")
            if getattr(self, name) is not None
        }

    def offset(self, name: str, extent: float, width: float, height: float) -> float:
        """Pixel offset for side ``name`` given the axis ``extent``."""
        value = getattr(self, name)
        if isinstance(value, str):
            return _evaluate(self._compiled[name], width, height)
        return float(value) * extent


def _axis(
    descriptor: PositionDescriptor,
    near: str,
    far: str,
    low: float,
    high: float,
    extent: float,
    width: float,
    height: float,
) -> float:
    center = (low + high) / 2
    try:
        if getattr(descriptor, near) is not None:
            return low + descriptor.offset(near, extent, width, height)
        if getattr(descriptor, far) is not None:
            return high - descriptor.offset(far, extent, width, height)
    except ArithmeticError as exc:
        logger.debug("Position expression on %s/%s failed (%s); using center", near, far, exc)
    return center


def resolve(descriptor: PositionDescriptor | None, bounds: Rect) -> tuple[float, float]:
    """Absolute ``(x, y)`` for ``descriptor`` applied to ``bounds``."""
    if descriptor is None:
        return bounds.center
    width, height = bounds.width, bounds.height
    x = _axis(descriptor, "left", "right", bounds.left, bounds.right, width, width, height)
    y = _axis(descriptor, "top", "bottom", bounds.top, bounds.bottom, height, width, height)
    return x, y
