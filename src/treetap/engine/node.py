"""In-memory UI nodes and read-only node snapshots.

``TreeNode`` implements the ``UINode`` and ``IndexedNode`` protocols over a
plain tree built from a dict (as stored in YAML/JSON tree dumps).
``NodeSnapshot`` captures the reportable properties of any ``UINode`` at
match time so results can outlive the live tree.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Callable, Iterator

from treetap.engine.protocols import Rect, UINode


def node_index(node: UINode) -> int:
    """Position of ``node`` among its parent's children (0 for the root)."""
    parent = node.parent
    if parent is None:
        return 0
    for i, child in enumerate(parent.children):
        if child is node:
            return i
    return 0


def node_depth(node: UINode) -> int:
    depth = 0
    parent = node.parent
    while parent is not None:
        depth += 1
        parent = parent.parent
    return depth


def iter_preorder(root: UINode) -> Iterator[UINode]:
    """Depth-first pre-order walk, children in index order."""
    stack: list[UINode] = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(list(node.children)))


@dataclasses.dataclass(frozen=True)
class NodeSnapshot:
    """Read-only projection of a matched node."""

    class_name: str
    text: str | None
    desc: str | None
    view_id: str | None
    bounds: Rect
    clickable: bool
    long_clickable: bool
    child_count: int
    index: int
    depth: int

    @classmethod
    def capture(cls, node: UINode) -> NodeSnapshot:
        return cls(
            class_name=node.class_name,
            text=node.text,
            desc=node.desc,
            view_id=node.view_id,
            bounds=node.bounds,
            clickable=bool(node.clickable),
            long_clickable=bool(node.long_clickable),
            child_count=len(node.children),
            index=node_index(node),
            depth=node_depth(node),
        )

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        data["bounds"] = self.bounds.as_list()
        return data


class TreeNode:
    """A concrete, mutable-at-build-time UI node.

    ``on_click`` / ``on_long_click`` let a host (or a test) decide what the
    node's native actions do.  Without them a node click succeeds exactly
    when the node reports the matching capability flag.
    """

    def __init__(
        self,
        class_name: str = "android.view.View",
        text: str | None = None,
        desc: str | None = None,
        view_id: str | None = None,
        bounds: Rect | None = None,
        clickable: bool = False,
        long_clickable: bool = False,
        checkable: bool = False,
        checked: bool = False,
        focusable: bool = False,
        visible_to_user: bool = True,
        children: list[TreeNode] | None = None,
    ) -> None:
        self.class_name = class_name
        self.text = text
        self.desc = desc
        self.view_id = view_id
        self.bounds = bounds or Rect(0, 0, 0, 0)
        self.clickable = clickable
        self.long_clickable = long_clickable
        self.checkable = checkable
        self.checked = checked
        self.focusable = focusable
        self.visible_to_user = visible_to_user
        self.on_click: Callable[[TreeNode], bool] | None = None
        self.on_long_click: Callable[[TreeNode], bool] | None = None
        self._parent: TreeNode | None = None
        self._children: list[TreeNode] = []
        for child in children or []:
            self.append(child)

    def __repr__(self) -> str:
        label = self.view_id or self.text or ""
        return f"<TreeNode {self.class_name} {label!r} {self.bounds.as_list()}>"

    # -- Tree structure --------------------------------------------------------

    @property
    def parent(self) -> TreeNode | None:
        return self._parent

    @property
    def children(self) -> list[TreeNode]:
        return self._children

    def append(self, child: TreeNode) -> TreeNode:
        child._parent = self
        self._children.append(child)
        return child

    # -- Node actions ----------------------------------------------------------

    def perform_click(self) -> bool:
        if self.on_click is not None:
            return self.on_click(self)
        return self.clickable

    def perform_long_click(self) -> bool:
        if self.on_long_click is not None:
            return self.on_long_click(self)
        return self.long_clickable

    # -- Indexed lookups -------------------------------------------------------

    def find_by_view_id(self, view_id: str) -> Iterator[TreeNode]:
        for node in iter_preorder(self):
            if node.view_id == view_id:
                yield node  # type: ignore[misc]

    def find_by_text(self, text: str) -> Iterator[TreeNode]:
        """Nodes whose text contains ``text`` under Unicode case folding."""
        needle = text.casefold()
        for node in iter_preorder(self):
            if node.text and needle in node.text.casefold():
                yield node  # type: ignore[misc]

    # -- (De)serialisation -----------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TreeNode:
        """Build a tree from a dump dict.

        Accepted keys: ``class``/``name``, ``text``, ``desc``, ``id``,
        ``bounds`` ([left, top, right, bottom]), ``clickable``,
        ``longClickable``, ``checkable``, ``checked``, ``focusable``,
        ``visibleToUser``, ``children``.
        """
        if not isinstance(data, dict):
            raise ValueError(f"node must be a mapping, got {type(data).__name__}")
        bounds = data.get("bounds")
        node = cls(
            class_name=str(data.get("class") or data.get("name") or "android.view.View"),
            text=data.get("text"),
            desc=data.get("desc"),
            view_id=data.get("id"),
            bounds=Rect.from_list(bounds) if bounds is not None else None,
            clickable=bool(data.get("clickable", False)),
            long_clickable=bool(data.get("longClickable", False)),
            checkable=bool(data.get("checkable", False)),
            checked=bool(data.get("checked", False)),
            focusable=bool(data.get("focusable", False)),
            visible_to_user=bool(data.get("visibleToUser", True)),
        )
        for child in data.get("children") or []:
            node.append(cls.from_dict(child))
        return node

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"class": self.class_name, "bounds": self.bounds.as_list()}
        for key, value in (("text", self.text), ("desc", self.desc), ("id", self.view_id)):
            if value is not None:
                data[key] = value
        if self.clickable:
            data["clickable"] = True
        if self.long_clickable:
            data["longClickable"] = True
        if self._children:
            data["children"] = [c.to_dict() for c in self._children]
        return data
