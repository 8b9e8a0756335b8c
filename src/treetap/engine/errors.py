"""Error taxonomy for selector parsing and rule execution.

``ParseError`` is raised for malformed selectors and position expressions.
Everything under ``ExecutionError`` is caught at the executor boundary and
turned into a failed ``ExecutionResult``; none of it reaches callers of
``RuleExecutor.execute_rule`` / ``execute_rules``.
"""

from __future__ import annotations


class TreeTapError(Exception):
    """Base class for all treetap errors."""


class ParseError(TreeTapError):
    """Raised when a selector or position expression cannot be parsed."""

    def __init__(self, message: str, source: str = "", position: int | None = None) -> None:
        self.message = message
        self.source = source
        self.position = position
        if position is not None:
            super().__init__(f"{message} at offset {position}")
        else:
            super().__init__(message)


class ExecutionError(TreeTapError):
    """Base class for failures while executing a single rule."""


class NoActiveWindowError(ExecutionError):
    """The tree provider has no active root node."""

    def __init__(self, message: str = "no active window") -> None:
        super().__init__(message)


class InvalidSelectorError(ExecutionError):
    """A rule's selector failed to parse."""

    def __init__(self, selector: str, cause: ParseError) -> None:
        self.selector = selector
        self.cause = cause
        super().__init__(f"invalid selector: {selector} ({cause})")


class NoMatchError(ExecutionError):
    """The selector matched no node in the current tree."""

    def __init__(self, selector: str) -> None:
        self.selector = selector
        super().__init__(f"no node matched selector: {selector}")


class ActionDispatchFailure(ExecutionError):
    """A node action, gesture or privileged tap raised while dispatching."""


class OutOfBoundsError(ExecutionError):
    """A resolved coordinate lies outside the visible screen."""

    def __init__(self, x: float, y: float, width: float, height: float) -> None:
        self.x = x
        self.y = y
        self.width = width
        self.height = height
        super().__init__(f"position ({x:g}, {y:g}) is outside the screen ({width:g}x{height:g})")
