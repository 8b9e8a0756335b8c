"""Rule executor -- resolves selectors against the live tree and runs actions.

``RuleExecutor`` turns ``ActionRequest`` objects into ``ExecutionResult``
objects.  Work runs on a thread pool; callbacks are handed to a delivery
context so they never run on the worker that produced them (unless the
caller asks for ``ImmediateDelivery``).

Per-request failures (no window, bad selector, no match, dispatch errors)
are always folded into a failed ``ExecutionResult``.  Only a fault in the
orchestration itself reaches ``ExecutorCallback.on_error``.

Usage::

    executor = RuleExecutor(context)
    future = executor.execute_rules(requests, callback)
    results = future.result()
    executor.shutdown()
"""

from __future__ import annotations

import dataclasses
import logging
import math
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Sequence

from treetap.engine.actions import ActionKind, ActionOutcome, perform
from treetap.engine.errors import (
    ExecutionError,
    InvalidSelectorError,
    NoActiveWindowError,
    NoMatchError,
    ParseError,
)
from treetap.engine.node import NodeSnapshot
from treetap.engine.position import PositionDescriptor
from treetap.engine.protocols import ServiceContext
from treetap.engine.selector import MatchOption, Selector
from treetap.models import DEFAULT_ACTION, DEFAULT_MAX_RETRIES, DEFAULT_MAX_WORKERS, DEFAULT_RETRY_DELAY_MS

logger = logging.getLogger("treetap.engine.executor")

MSG_SUCCEEDED = "execution succeeded"
MSG_FAILED = "execution failed"
BATCH = "batch"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class ActionRequest:
    """One unit of work: find ``selector``, then run ``action`` on it.

    ``delay_after_execution`` and ``retry_delay`` are in milliseconds.
    ``max_retries`` is the total number of attempts (1 = no retry).
    """

    selector: str
    fast_query: bool = False
    action: str = DEFAULT_ACTION
    position: PositionDescriptor | None = None
    delay_after_execution: float | None = None
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY_MS

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActionRequest:
        """Build a request from a rule mapping (camelCase or snake_case keys).

        Raises ``ParseError`` for a missing selector, a malformed position,
        a non-boolean fast-query flag or a non-numeric timing field; the
        selector itself is not parsed here.
        """
        if not isinstance(data, dict):
            raise ParseError(f"rule must be a mapping, got {type(data).__name__}")
        selector = data.get("selector")
        if not isinstance(selector, str) or not selector.strip():
            raise ParseError("rule is missing a 'selector' string")

        def pick(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        def number(key: str, value: Any, cast: Callable[[Any], Any]) -> Any:
            if value is None:
                return None
            if isinstance(value, bool):
                raise ParseError(f"{key!r} must be a number, got {value!r}")
            try:
                converted = cast(value)
            except (TypeError, ValueError, OverflowError) as exc:
                raise ParseError(f"{key!r} must be a number, got {value!r}") from exc
            if not math.isfinite(converted):
                raise ParseError(f"{key!r} must be finite, got {value!r}")
            return converted

        fast_query = pick("fastQuery", "fast_query", default=False)
        if not isinstance(fast_query, bool):
            raise ParseError(f"'fastQuery' must be true or false, got {fast_query!r}")

        return cls(
            selector=selector,
            fast_query=fast_query,
            action=str(pick("action", default=DEFAULT_ACTION)),
            position=PositionDescriptor.from_dict(data.get("position")),
            delay_after_execution=number(
                "delayAfterExecution", pick("delayAfterExecution", "delay_after_execution"), float
            ),
            max_retries=number(
                "maxRetries", pick("maxRetries", "max_retries", default=DEFAULT_MAX_RETRIES), int
            ),
            retry_delay=number(
                "retryDelay", pick("retryDelay", "retry_delay", default=DEFAULT_RETRY_DELAY_MS), float
            ),
        )


@dataclasses.dataclass(frozen=True)
class ExecutionResult:
    selector: str
    action: str
    success: bool
    message: str
    node_snapshot: NodeSnapshot | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "selector": self.selector,
            "action": self.action,
            "success": self.success,
            "message": self.message,
            "node": self.node_snapshot.to_dict() if self.node_snapshot else None,
        }


class ExecutorCallback:
    """Receives executor results on the delivery context.  Override what you need."""

    def on_success(self, result: ExecutionResult) -> None:
        pass

    def on_error(self, error: BaseException) -> None:
        pass

    def on_batch_success(self, results: list[ExecutionResult]) -> None:
        pass


# ---------------------------------------------------------------------------
# Delivery contexts
# ---------------------------------------------------------------------------

class ImmediateDelivery:
    """Runs callbacks on the posting thread."""

    def post(self, fn: Callable[[], None]) -> None:
        fn()

    def close(self) -> None:
        pass


class QueueDelivery:
    """Queues callbacks until the owning thread calls ``run_pending()``."""

    def __init__(self) -> None:
        self._queue: queue.Queue[Callable[[], None]] = queue.Queue()

    def post(self, fn: Callable[[], None]) -> None:
        self._queue.put(fn)

    def run_pending(self, timeout: float | None = None) -> int:
        """Run queued callbacks; wait up to ``timeout`` seconds for the first one."""
        ran = 0
        try:
            fn = self._queue.get(timeout=timeout) if timeout else self._queue.get_nowait()
        except queue.Empty:
            return ran
        while True:
            fn()
            ran += 1
            try:
                fn = self._queue.get_nowait()
            except queue.Empty:
                return ran

    def close(self) -> None:
        pass


class ThreadDelivery:
    """Runs callbacks, in order, on one dedicated delivery thread."""

    def __init__(self, name: str = "treetap-delivery") -> None:
        self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)

    def post(self, fn: Callable[[], None]) -> None:
        self._pool.submit(self._run, fn)

    @staticmethod
    def _run(fn: Callable[[], None]) -> None:
        try:
            fn()
        except Exception:
            logger.error("Executor callback raised", exc_info=True)

    def close(self) -> None:
        self._pool.shutdown(wait=True)


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------

class RuleExecutor:
    """Runs single rules and ordered batches against a host ``ServiceContext``."""

    def __init__(
        self,
        context: ServiceContext,
        delivery: ImmediateDelivery | QueueDelivery | ThreadDelivery | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        self._context = context
        self._owns_delivery = delivery is None
        self._delivery = delivery if delivery is not None else ThreadDelivery()
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="treetap-worker")
        self._closed = threading.Event()

    def __enter__(self) -> RuleExecutor:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work and drop callbacks of work still in flight."""
        if self._closed.is_set():
            return
        self._closed.set()
        self._pool.shutdown(wait=wait, cancel_futures=True)
        if self._owns_delivery:
            self._delivery.close()
        logger.debug("RuleExecutor shut down")

    # -- Public API ----------------------------------------------------------

    def execute_rule(
        self,
        request: ActionRequest,
        callback: ExecutorCallback | None = None,
    ) -> Future[ExecutionResult]:
        """Run one request on the worker pool; deliver ``on_success(result)``."""

        def task() -> ExecutionResult:
            result = self.perform_rule(request)
            self._deliver(callback, "on_success", result)
            return result

        return self._submit(task, callback)

    def execute_rules(
        self,
        requests: Sequence[ActionRequest],
        callback: ExecutorCallback | None = None,
    ) -> Future[list[ExecutionResult]]:
        """Run requests strictly in order; result list ends with the batch aggregate."""
        requests = list(requests)

        def task() -> list[ExecutionResult]:
            results = self.perform_rules(requests)
            self._deliver(callback, "on_batch_success", results)
            self._deliver(callback, "on_success", results[-1])
            return results

        return self._submit(task, callback)

    # -- Synchronous core ----------------------------------------------------

    def perform_rules(self, requests: Sequence[ActionRequest]) -> list[ExecutionResult]:
        results: list[ExecutionResult] = []
        for i, request in enumerate(requests):
            if self._closed.is_set():
                logger.debug("Batch interrupted by shutdown after %d of %d rules", i, len(requests))
                break
            results.append(self.perform_rule(request))
            is_last = i == len(requests) - 1
            if not is_last and request.delay_after_execution:
                self._sleep(request.delay_after_execution)

        succeeded = sum(1 for r in results if r.success)
        aggregate = ExecutionResult(
            selector=BATCH,
            action=BATCH,
            success=all(r.success for r in results),
            message=f"{succeeded}/{len(results)} succeeded",
        )
        logger.info("Batch finished: %s", aggregate.message)
        return results + [aggregate]

    def perform_rule(self, request: ActionRequest) -> ExecutionResult:
        """Run one request with its retry policy.  Never raises ``ExecutionError``."""
        attempts = max(1, int(request.max_retries))
        result, retryable = self._attempt(request)
        for attempt in range(2, attempts + 1):
            if result.success or not retryable or self._closed.is_set():
                break
            logger.warning(
                "Rule %r failed (%s); retry %d/%d in %gms",
                request.selector,
                result.message,
                attempt,
                attempts,
                request.retry_delay,
            )
            if not self._sleep(request.retry_delay):
                break
            result, retryable = self._attempt(request)
        return result

    def _attempt(self, request: ActionRequest) -> tuple[ExecutionResult, bool]:
        """One try at ``request``; the flag says whether a retry could help."""
        snapshot: NodeSnapshot | None = None
        try:
            root = self._context.tree.root()
            if root is None:
                raise NoActiveWindowError()

            try:
                selector = Selector.parse(request.selector)
            except ParseError as exc:
                raise InvalidSelectorError(request.selector, exc) from exc

            node = selector.match(root, MatchOption(fast_query=request.fast_query))
            if node is None:
                raise NoMatchError(request.selector)

            snapshot = NodeSnapshot.capture(node)
            outcome = perform(ActionKind.lookup(request.action), self._context, node, request.position)
        except InvalidSelectorError as exc:
            logger.info("Rule %r failed: %s", request.selector, exc)
            return self._result(request, False, str(exc), snapshot), False
        except ExecutionError as exc:
            logger.info("Rule %r failed: %s", request.selector, exc)
            return self._result(request, False, str(exc), snapshot), True
        except Exception as exc:
            logger.error("Rule %r raised unexpectedly: %s", request.selector, exc, exc_info=True)
            return self._result(request, False, f"execution error: {exc}", snapshot), False

        logger.info(
            "Rule %r -> %s %s%s",
            request.selector,
            outcome.action,
            "ok" if outcome.succeeded else "failed",
            " (privileged)" if outcome.via_privileged_path else "",
        )
        return self._result(request, outcome.succeeded, self._message(outcome), snapshot), True

    # -- Helpers -------------------------------------------------------------

    @staticmethod
    def _message(outcome: ActionOutcome) -> str:
        if outcome.succeeded:
            return MSG_SUCCEEDED
        if outcome.error is not None:
            return f"{MSG_FAILED}: {outcome.error}"
        return MSG_FAILED

    @staticmethod
    def _result(
        request: ActionRequest,
        success: bool,
        message: str,
        snapshot: NodeSnapshot | None,
    ) -> ExecutionResult:
        return ExecutionResult(
            selector=request.selector,
            action=request.action,
            success=success,
            message=message,
            node_snapshot=snapshot,
        )

    def _sleep(self, delay_ms: float) -> bool:
        """Wait ``delay_ms``; returns False if shutdown interrupted the wait.

        A delay that is not a finite number is skipped with a warning.
        """
        try:
            seconds = max(0.0, float(delay_ms)) / 1000.0
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring invalid delay %r: %s", delay_ms, exc)
            return not self._closed.is_set()
        if not math.isfinite(seconds):
            logger.warning("Ignoring invalid delay %r", delay_ms)
            return not self._closed.is_set()
        return not self._closed.wait(seconds)

    def _submit(self, task: Callable[[], Any], callback: ExecutorCallback | None) -> Future:
        if self._closed.is_set():
            raise RuntimeError("RuleExecutor is shut down")

        def guarded() -> Any:
            try:
                return task()
            except Exception as exc:
                logger.error("Executor task faulted: %s", exc, exc_info=True)
                self._deliver(callback, "on_error", exc)
                raise

        return self._pool.submit(guarded)

    def _deliver(self, callback: ExecutorCallback | None, method: str, payload: Any) -> None:
        if callback is None:
            return
        if self._closed.is_set():
            logger.debug("Dropping %s callback after shutdown", method)
            return
        handler = getattr(callback, method)

        def invoke() -> None:
            if self._closed.is_set():
                logger.debug("Dropping %s callback after shutdown", method)
                return
            handler(payload)

        self._delivery.post(invoke)

