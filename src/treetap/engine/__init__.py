"""treetap engine -- selector matching, action performers and the rule executor.

- Selector: parses selector strings and matches them against a node tree
- ActionKind / perform: action variants with click -> tap fallback chains
- resolve / PositionDescriptor: where inside a node an action lands
- RuleExecutor: single and batched rule execution on a worker pool
- SimDevice: in-process host backed by a tree dump
"""

from treetap.engine.actions import ActionKind, ActionOutcome, perform, perform_named
from treetap.engine.errors import (
    ActionDispatchFailure,
    ExecutionError,
    InvalidSelectorError,
    NoActiveWindowError,
    NoMatchError,
    OutOfBoundsError,
    ParseError,
    TreeTapError,
)
from treetap.engine.executor import (
    ActionRequest,
    ExecutionResult,
    ExecutorCallback,
    ImmediateDelivery,
    QueueDelivery,
    RuleExecutor,
    ThreadDelivery,
)
from treetap.engine.node import NodeSnapshot, TreeNode
from treetap.engine.position import PositionDescriptor, resolve
from treetap.engine.protocols import Gesture, GesturePath, Rect, ServiceContext
from treetap.engine.selector import MatchOption, Selector, query_selector, query_selector_all
from treetap.engine.sim_device import SimDevice, SimPrivilegedTapper

__all__ = [
    "ActionDispatchFailure",
    "ActionKind",
    "ActionOutcome",
    "ActionRequest",
    "ExecutionError",
    "ExecutionResult",
    "ExecutorCallback",
    "Gesture",
    "GesturePath",
    "ImmediateDelivery",
    "InvalidSelectorError",
    "MatchOption",
    "NoActiveWindowError",
    "NoMatchError",
    "NodeSnapshot",
    "OutOfBoundsError",
    "ParseError",
    "PositionDescriptor",
    "QueueDelivery",
    "Rect",
    "RuleExecutor",
    "Selector",
    "ServiceContext",
    "SimDevice",
    "SimPrivilegedTapper",
    "ThreadDelivery",
    "TreeNode",
    "TreeTapError",
    "perform",
    "perform_named",
    "query_selector",
    "query_selector_all",
    "resolve",
]
