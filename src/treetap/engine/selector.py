"""Selector query language -- parse a selector string and match it against a node tree.

Grammar (whitespace is insignificant inside brackets)::

    selector   := segment (combinator segment)*
    combinator := WS | '>' | '+' | '~'
    segment    := '@'? (NAME | '*')? ('[' expr ']')*
                | '@'? ATTR OP value              # shorthand, e.g. text=Skip
    expr       := term ('||' term)*
    term       := factor ('&&' factor)*
    factor     := ATTR OP value | '(' expr ')'

Combinators read left to right like CSS: ``A B`` (B inside A), ``A > B``
(B is a child of A), ``A + B`` (B directly follows sibling A) and
``A ~ B`` (B follows sibling A).  The matched node is the segment marked
with ``@``, otherwise the last segment.

Evaluation walks the tree in pre-order and, for each node, checks whether
the chain can be satisfied with that node bound to the last segment by
walking up through parents and earlier siblings, backtracking over
alternative candidates.  The first node that satisfies the chain wins, so
the result is deterministic for a given tree.

Fast query narrows the candidate set for the last segment using the host's
id/text lookups and then verifies each candidate exactly like a full
traversal.  It is only used when the selector is *eligible*:

* the target is the last segment (no ``@`` on an earlier segment), and
* the last segment has an indexable predicate AND-ed at its top level:
  ``id=`` / ``vid=`` with a string, or ``text=`` / ``text^=`` /
  ``text*=`` / ``text$=`` with a non-empty string.

Anything else falls back to full traversal even when ``fast_query`` is set,
so both modes always return the same node.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from typing import Any, Callable, Iterable, Iterator, Union

from treetap.engine.errors import ParseError
from treetap.engine.node import iter_preorder, node_depth, node_index
from treetap.engine.protocols import IndexedNode, UINode

logger = logging.getLogger("treetap.engine.selector")


# ---------------------------------------------------------------------------
# Attributes
# ---------------------------------------------------------------------------

def _short_id(node: UINode) -> str | None:
    view_id = node.view_id
    if view_id is None:
        return None
    _, sep, tail = view_id.partition(":id/")
    return tail if sep else view_id


def _length(value: str | None) -> int | None:
    return None if value is None else len(value)


@dataclasses.dataclass(frozen=True)
class _Attribute:
    kind: str  # "str", "bool" or "num"
    getter: Callable[[UINode], Any]


ATTRIBUTES: dict[str, _Attribute] = {
    "id": _Attribute("str", lambda n: n.view_id),
    "vid": _Attribute("str", _short_id),
    "text": _Attribute("str", lambda n: n.text),
    "desc": _Attribute("str", lambda n: n.desc),
    "name": _Attribute("str", lambda n: n.class_name),
    "clickable": _Attribute("bool", lambda n: bool(n.clickable)),
    "longClickable": _Attribute("bool", lambda n: bool(n.long_clickable)),
    "checkable": _Attribute("bool", lambda n: bool(n.checkable)),
    "checked": _Attribute("bool", lambda n: bool(n.checked)),
    "focusable": _Attribute("bool", lambda n: bool(n.focusable)),
    "visibleToUser": _Attribute("bool", lambda n: bool(n.visible_to_user)),
    "childCount": _Attribute("num", lambda n: len(n.children)),
    "index": _Attribute("num", node_index),
    "depth": _Attribute("num", node_depth),
    "left": _Attribute("num", lambda n: n.bounds.left),
    "top": _Attribute("num", lambda n: n.bounds.top),
    "right": _Attribute("num", lambda n: n.bounds.right),
    "bottom": _Attribute("num", lambda n: n.bounds.bottom),
    "width": _Attribute("num", lambda n: n.bounds.width),
    "height": _Attribute("num", lambda n: n.bounds.height),
    "text.length": _Attribute("num", lambda n: _length(n.text)),
    "desc.length": _Attribute("num", lambda n: _length(n.desc)),
}

# Longest first so "!^=" wins over "!=" and "<=" over "<"
OPERATORS = ("!^=", "!$=", "!*=", "!~=", "^=", "$=", "*=", "~=", "!=", "<=", ">=", "=", "<", ">")
_STRING_OPS = {"^=", "$=", "*=", "~=", "!^=", "!$=", "!*=", "!~="}
_ORDER_OPS = {"<", "<=", ">", ">="}
_INDEXABLE_TEXT_OPS = {"=", "^=", "*=", "$="}

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?\Z")
_NAME_CHARS = re.compile(r"[A-Za-z0-9_.$]")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}


# ---------------------------------------------------------------------------
# Expression tree
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class Predicate:
    attr: str
    op: str
    value: Any
    pattern: re.Pattern | None = dataclasses.field(default=None, compare=False)

    def matches(self, node: UINode) -> bool:
        actual = ATTRIBUTES[self.attr].getter(node)
        op = self.op
        if op == "=":
            return actual == self.value
        if op == "!=":
            return actual != self.value
        negated = op.startswith("!")
        if op in _STRING_OPS:
            if actual is None:
                return negated
            base = op.lstrip("!")
            if base == "^=":
                hit = actual.startswith(self.value)
            elif base == "$=":
                hit = actual.endswith(self.value)
            elif base == "*=":
                hit = self.value in actual
            else:
                hit = self.pattern.fullmatch(actual) is not None  # type: ignore[union-attr]
            return hit != negated
        if actual is None:
            return False
        if op == "<":
            return actual < self.value
        if op == "<=":
            return actual <= self.value
        if op == ">":
            return actual > self.value
        return actual >= self.value


@dataclasses.dataclass(frozen=True)
class AllOf:
    items: tuple[Expr, ...]

    def matches(self, node: UINode) -> bool:
        return all(item.matches(node) for item in self.items)


@dataclasses.dataclass(frozen=True)
class AnyOf:
    items: tuple[Expr, ...]

    def matches(self, node: UINode) -> bool:
        return any(item.matches(node) for item in self.items)


Expr = Union[Predicate, AllOf, AnyOf]


@dataclasses.dataclass(frozen=True)
class Segment:
    """One compound step of a selector: optional class name plus predicates."""

    class_name: str | None = None
    expr: Expr | None = None
    is_target: bool = False

    def matches(self, node: UINode) -> bool:
        if self.class_name is not None:
            actual = node.class_name or ""
            if actual != self.class_name and not actual.endswith("." + self.class_name):
                return False
        return self.expr is None or self.expr.matches(node)


@dataclasses.dataclass(frozen=True)
class MatchOption:
    fast_query: bool = False


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class _Parser:
    def __init__(self, source: str) -> None:
        self.src = source
        self.pos = 0

    # -- Low-level helpers ---------------------------------------------------

    def error(self, message: str, pos: int | None = None) -> ParseError:
        return ParseError(message, self.src, self.pos if pos is None else pos)

    def at_end(self) -> bool:
        return self.pos >= len(self.src)

    def peek(self) -> str:
        return self.src[self.pos] if self.pos < len(self.src) else ""

    def skip_ws(self) -> bool:
        start = self.pos
        while self.pos < len(self.src) and self.src[self.pos].isspace():
            self.pos += 1
        return self.pos > start

    def expect(self, char: str) -> None:
        if self.peek() != char:
            found = repr(self.peek()) if not self.at_end() else "end of input"
            raise self.error(f"expected {char!r}, found {found}")
        self.pos += 1

    def read_name(self) -> str:
        start = self.pos
        while self.pos < len(self.src) and _NAME_CHARS.match(self.src[self.pos]):
            self.pos += 1
        return self.src[start:self.pos]

    def read_operator(self) -> str | None:
        for op in OPERATORS:
            if self.src.startswith(op, self.pos):
                self.pos += len(op)
                return op
        return None

    # -- Grammar -------------------------------------------------------------

    def parse(self) -> tuple[list[Segment], list[str]]:
        self.skip_ws()
        if self.at_end():
            raise self.error("empty selector")
        segments = [self.parse_segment()]
        combinators: list[str] = []
        while True:
            had_ws = self.skip_ws()
            if self.at_end():
                break
            char = self.peek()
            if char in ">+~":
                self.pos += 1
                self.skip_ws()
                if self.at_end():
                    raise self.error(f"dangling combinator {char!r}")
                combinators.append(char)
            elif had_ws:
                combinators.append(" ")
            else:
                raise self.error(f"unexpected character {char!r}")
            segments.append(self.parse_segment())
        return segments, combinators

    def parse_segment(self) -> Segment:
        start = self.pos
        is_target = False
        if self.peek() == "@":
            is_target = True
            self.pos += 1

        class_name: str | None = None
        wildcard = self.peek() == "*"
        if wildcard:
            self.pos += 1
        else:
            name_start = self.pos
            name = self.read_name()
            if name:
                if name in ATTRIBUTES and self.peek() and self.peek() in "=!^$*~<>":
                    # Shorthand predicate: text=Skip
                    self.pos = name_start
                    return Segment(None, self.parse_predicate(bracketed=False), is_target)
                class_name = name

        exprs: list[Expr] = []
        while self.peek() == "[":
            self.pos += 1
            exprs.append(self.parse_expr())
            self.skip_ws()
            self.expect("]")

        if class_name is None and not exprs and not wildcard:
            raise self.error("expected a class name, '*', '[' or attribute predicate", start)

        expr: Expr | None
        if not exprs:
            expr = None
        elif len(exprs) == 1:
            expr = exprs[0]
        else:
            expr = AllOf(tuple(exprs))
        return Segment(class_name, expr, is_target)

    def parse_expr(self) -> Expr:
        terms = [self.parse_term()]
        while True:
            save = self.pos
            self.skip_ws()
            if self.src.startswith("||", self.pos):
                self.pos += 2
                terms.append(self.parse_term())
            else:
                self.pos = save
                break
        return terms[0] if len(terms) == 1 else AnyOf(tuple(terms))

    def parse_term(self) -> Expr:
        factors = [self.parse_factor()]
        while True:
            save = self.pos
            self.skip_ws()
            if self.src.startswith("&&", self.pos):
                self.pos += 2
                factors.append(self.parse_factor())
            else:
                self.pos = save
                break
        return factors[0] if len(factors) == 1 else AllOf(tuple(factors))

    def parse_factor(self) -> Expr:
        self.skip_ws()
        if self.peek() == "(":
            self.pos += 1
            expr = self.parse_expr()
            self.skip_ws()
            self.expect(")")
            return expr
        return self.parse_predicate(bracketed=True)

    def parse_predicate(self, bracketed: bool) -> Predicate:
        attr_pos = self.pos
        attr = self.read_name()
        if not attr:
            raise self.error("expected attribute name")
        if attr not in ATTRIBUTES:
            raise self.error(f"unknown attribute {attr!r}", attr_pos)
        if bracketed:
            self.skip_ws()
        op_pos = self.pos
        op = self.read_operator()
        if op is None:
            raise self.error(f"expected operator after {attr!r}", op_pos)
        if bracketed:
            self.skip_ws()
        value_pos = self.pos
        kind, value = self.parse_value(bracketed)
        return self.build_predicate(attr, op, kind, value, value_pos)

    def parse_value(self, bracketed: bool) -> tuple[str, Any]:
        char = self.peek()
        if char in ("'", '"'):
            return "quoted", self.read_quoted(char)
        start = self.pos
        stops = " \t\r\n]&|)" if bracketed else " \t\r\n[]"
        while self.pos < len(self.src) and self.src[self.pos] not in stops:
            self.pos += 1
        raw = self.src[start:self.pos]
        if not raw:
            raise self.error("expected a value")
        return "bare", raw

    def read_quoted(self, quote: str) -> str:
        start = self.pos
        self.pos += 1
        out: list[str] = []
        while self.pos < len(self.src):
            char = self.src[self.pos]
            if char == "\\":
                if self.pos + 1 >= len(self.src):
                    break
                nxt = self.src[self.pos + 1]
                out.append(_ESCAPES.get(nxt, nxt))
                self.pos += 2
                continue
            if char == quote:
                self.pos += 1
                return "".join(out)
            out.append(char)
            self.pos += 1
        raise self.error("unterminated string", start)

    def build_predicate(self, attr: str, op: str, kind: str, raw: str, pos: int) -> Predicate:
        attr_kind = ATTRIBUTES[attr].kind
        value: Any
        if kind == "quoted":
            if attr_kind != "str":
                raise self.error(f"{attr!r} expects a {attr_kind} value, got a string", pos)
            value = raw
        elif raw == "null":
            value = None
        elif attr_kind == "bool":
            if raw not in ("true", "false"):
                raise self.error(f"{attr!r} expects true or false, got {raw!r}", pos)
            value = raw == "true"
        elif attr_kind == "num":
            if not _NUMBER_RE.match(raw):
                raise self.error(f"{attr!r} expects a number, got {raw!r}", pos)
            value = float(raw) if "." in raw else int(raw)
        else:
            value = raw

        if value is None and op not in ("=", "!="):
            raise self.error(f"operator {op!r} cannot compare with null", pos)
        if op in _STRING_OPS and attr_kind != "str":
            raise self.error(f"operator {op!r} needs a string attribute, {attr!r} is {attr_kind}", pos)
        if op in _ORDER_OPS and attr_kind != "num":
            raise self.error(f"operator {op!r} needs a numeric attribute, {attr!r} is {attr_kind}", pos)

        pattern = None
        if op in ("~=", "!~="):
            try:
                pattern = re.compile(value)
            except re.error as exc:
                raise self.error(f"invalid regular expression {value!r}: {exc}", pos) from exc
        return Predicate(attr, op, value, pattern)


# ---------------------------------------------------------------------------
# Selector
# ---------------------------------------------------------------------------

def _indexable(expr: Expr | None) -> Predicate | None:
    """First predicate usable for an id/text lookup, AND-ed at top level."""
    if isinstance(expr, Predicate):
        if expr.attr in ("id", "vid") and expr.op == "=" and isinstance(expr.value, str):
            return expr
        if expr.attr == "text" and expr.op in _INDEXABLE_TEXT_OPS \
                and isinstance(expr.value, str) and expr.value:
            return expr
        return None
    if isinstance(expr, AllOf):
        for item in expr.items:
            found = _indexable(item)
            if found is not None:
                return found
    return None


class Selector:
    """A parsed, immutable selector query."""

    def __init__(self, source: str, segments: list[Segment], combinators: list[str]) -> None:
        targets = [i for i, seg in enumerate(segments) if seg.is_target]
        if len(targets) > 1:
            raise ParseError("only one segment may be marked with '@'", source)
        self._source = source
        self._segments = tuple(segments)
        self._combinators = tuple(combinators)
        self._target_index = targets[0] if targets else len(segments) - 1
        last = self._segments[-1]
        self._index_predicate = (
            _indexable(last.expr) if self._target_index == len(segments) - 1 else None
        )

    @classmethod
    def parse(cls, source: str) -> Selector:
        """Parse ``source``; raises ``ParseError`` on malformed input."""
        if not isinstance(source, str):
            raise ParseError(f"selector must be a string, got {type(source).__name__}")
        segments, combinators = _Parser(source).parse()
        return cls(source, segments, combinators)

    @classmethod
    def parse_or_none(cls, source: str) -> Selector | None:
        try:
            return cls.parse(source)
        except ParseError:
            return None

    def __str__(self) -> str:
        return self._source

    def __repr__(self) -> str:
        return f"Selector({self._source!r})"

    @property
    def source(self) -> str:
        return self._source

    @property
    def segments(self) -> tuple[Segment, ...]:
        return self._segments

    @property
    def combinators(self) -> tuple[str, ...]:
        return self._combinators

    @property
    def target_index(self) -> int:
        return self._target_index

    @property
    def fast_query_eligible(self) -> bool:
        return self._index_predicate is not None

    # -- Matching ------------------------------------------------------------

    def match(self, root: UINode, option: MatchOption | None = None) -> UINode | None:
        """First target in traversal order, or ``None``."""
        return next(iter(self.match_all(root, option)), None)

    def match_all(self, root: UINode, option: MatchOption | None = None) -> Iterator[UINode]:
        """All distinct targets, in the traversal order of their chain ends."""
        option = option or MatchOption()
        memo: dict[tuple[int, int], list[UINode] | None] = {}
        seen: set[int] = set()
        last = len(self._segments) - 1
        for candidate in self._candidates(root, option):
            chain = self._satisfy(candidate, last, root, memo)
            if chain is None:
                continue
            target = chain[self._target_index]
            if id(target) in seen:
                continue
            seen.add(id(target))
            yield target

    def _candidates(self, root: UINode, option: MatchOption) -> Iterable[UINode]:
        if not option.fast_query:
            return iter_preorder(root)
        predicate = self._index_predicate
        if predicate is None:
            logger.debug("Selector %r not eligible for fast query; using full traversal", self._source)
            return iter_preorder(root)
        if isinstance(root, IndexedNode):
            if predicate.attr == "id":
                logger.debug("Fast query on %r via id lookup %r", self._source, predicate.value)
                return root.find_by_view_id(predicate.value)
            if predicate.attr == "text":
                logger.debug("Fast query on %r via text lookup %r", self._source, predicate.value)
                return root.find_by_text(predicate.value)
        return (node for node in iter_preorder(root) if predicate.matches(node))

    def _satisfy(
        self,
        node: UINode,
        index: int,
        root: UINode,
        memo: dict[tuple[int, int], list[UINode] | None],
    ) -> list[UINode] | None:
        """Bindings for segments[0..index] with ``node`` bound at ``index``."""
        key = (id(node), index)
        if key in memo:
            chain = memo[key]
            return list(chain) if chain is not None else None

        result: list[UINode] | None = None
        if self._segments[index].matches(node):
            if index == 0:
                result = [node]
            else:
                for related in _related(node, self._combinators[index - 1], root):
                    chain = self._satisfy(related, index - 1, root, memo)
                    if chain is not None:
                        result = chain + [node]
                        break
        memo[key] = result
        return list(result) if result is not None else None


def _related(node: UINode, combinator: str, root: UINode) -> Iterator[UINode]:
    """Nodes that may bind the previous segment, nearest first, never above ``root``."""
    if node is root:
        return
    parent = node.parent
    if parent is None:
        return
    if combinator == ">":
        yield parent
    elif combinator == " ":
        current: UINode | None = parent
        while current is not None:
            yield current
            if current is root:
                return
            current = current.parent
    else:
        siblings = list(parent.children)
        pos = next((i for i, child in enumerate(siblings) if child is node), None)
        if pos is None or pos == 0:
            return
        if combinator == "+":
            yield siblings[pos - 1]
        else:
            yield from reversed(siblings[:pos])


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------

def query_selector(root: UINode, selector: Selector, option: MatchOption | None = None) -> UINode | None:
    return selector.match(root, option)


def query_selector_all(root: UINode, selector: Selector, option: MatchOption | None = None) -> list[UINode]:
    return list(selector.match_all(root, option))
