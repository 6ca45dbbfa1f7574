"""
Bounded concurrent fan-out over independent brew commands.

Every WorkItem is run through a command runner on a worker thread. An
ExecutionLimiter keeps at most ``cap`` commands in flight, failures are
recorded as Outcomes instead of being raised, and the returned list is
aligned with the input no matter which command finishes first.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence

from .common import vlog
from .progress import ProgressSink


OPERATIONS = ("fetch", "install", "reinstall")

# Present participle for labels, past tense for result lines
_VERBS = {
    "fetch": ("Fetching", "Fetched"),
    "install": ("Installing", "Installed"),
    "reinstall": ("Reinstalling", "Reinstalled"),
}


class ConfigurationError(ValueError):
    """Raised before any work starts when the fan-out cannot be configured."""


@dataclass(frozen=True)
class WorkItem:
    """
    One package/operation pair.

    Attributes:
        package: Homebrew formula or cask name
        operation: One of OPERATIONS
    """
    package: str
    operation: str

    def __post_init__(self):
        if not self.package:
            raise ConfigurationError("WorkItem package name must not be empty")
        if self.operation not in OPERATIONS:
            raise ConfigurationError(
                f"Unknown operation: {self.operation}. "
                f"Must be one of: {', '.join(OPERATIONS)}"
            )

    def to_dict(self) -> dict:
        return {"package": self.package, "operation": self.operation}


@dataclass(frozen=True)
class WorkBatch:
    """
    Consecutive WorkItems sharing one operation, run as a single command.

    Attributes:
        operation: Operation all items share
        items: Items in input order
        start: Index of the first item in the original input
    """
    operation: str
    items: tuple[WorkItem, ...]
    start: int

    @property
    def packages(self) -> tuple[str, ...]:
        return tuple(item.package for item in self.items)

    @property
    def label(self) -> str:
        verb = _VERBS[self.operation][0]
        if len(self.items) == 1:
            return f"{verb} {self.items[0].package}"
        return f"{verb} batch: {', '.join(self.packages)}"


@dataclass(frozen=True)
class Outcome:
    """
    Result of one WorkItem.

    Attributes:
        item: The WorkItem this outcome belongs to
        success: Whether the command succeeded
        error_message: Human-readable error message if failed
        exit_code: Exit status of the command (None if it never ran)
        duration_seconds: Wall time of the command that covered this item
    """
    item: WorkItem
    success: bool
    error_message: str | None = None
    exit_code: int | None = None
    duration_seconds: float = 0.0

    @property
    def package(self) -> str:
        return self.item.package

    @staticmethod
    def ok(item: WorkItem, duration_seconds: float = 0.0) -> Outcome:
        return Outcome(item=item, success=True, exit_code=0, duration_seconds=duration_seconds)

    @staticmethod
    def failure(
        item: WorkItem,
        message: str,
        exit_code: int | None = None,
        duration_seconds: float = 0.0,
    ) -> Outcome:
        return Outcome(
            item=item,
            success=False,
            error_message=message,
            exit_code=exit_code,
            duration_seconds=duration_seconds,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "package": self.item.package,
            "operation": self.item.operation,
            "success": self.success,
            "error_message": self.error_message,
            "exit_code": self.exit_code,
            "duration_seconds": self.duration_seconds,
        }


class ExecutionLimiter:
    """
    Counting semaphore of fixed capacity with in-flight bookkeeping.

    Usable as a context manager; the slot is released even when the body
    raises.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ConfigurationError(
                f"Invalid concurrency cap: {capacity}. Must be at least 1"
            )
        self.capacity = capacity
        self._semaphore = threading.BoundedSemaphore(capacity)
        self._lock = threading.Lock()
        self._in_flight = 0
        self._peak = 0

    def acquire(self) -> None:
        self._semaphore.acquire()
        with self._lock:
            self._in_flight += 1
            self._peak = max(self._peak, self._in_flight)

    def release(self) -> None:
        with self._lock:
            self._in_flight -= 1
        self._semaphore.release()

    def __enter__(self) -> ExecutionLimiter:
        self.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    @property
    def peak(self) -> int:
        """Highest number of slots held at the same time so far."""
        with self._lock:
            return self._peak


class CommandResultLike(Protocol):
    """Shape the executor expects back from a runner (see brew.CommandResult)."""

    success: bool
    exit_code: int
    error_message: str | None
    duration_seconds: float


# (operation, packages) -> result with success/exit_code/error_message/duration_seconds
CommandRunner = Callable[[str, Sequence[str]], CommandResultLike]


def make_batches(items: Sequence[WorkItem], batch_size: int = 1) -> list[WorkBatch]:
    """
    Group consecutive items with the same operation into batches.

    Args:
        items: Items in input order
        batch_size: Maximum items per batch

    Returns:
        Batches covering every item exactly once, in input order
    """
    if batch_size < 1:
        raise ConfigurationError(f"Invalid batch size: {batch_size}. Must be at least 1")

    batches: list[WorkBatch] = []
    current: list[WorkItem] = []
    start = 0
    for index, item in enumerate(items):
        if current and (len(current) >= batch_size or item.operation != current[0].operation):
            batches.append(WorkBatch(current[0].operation, tuple(current), start))
            current = []
        if not current:
            start = index
        current.append(item)
    if current:
        batches.append(WorkBatch(current[0].operation, tuple(current), start))
    return batches


def fan_out(
    items: Sequence[WorkItem],
    runner: CommandRunner,
    cap: int,
    sink: ProgressSink | None = None,
    batch_size: int = 1,
    limiter: ExecutionLimiter | None = None,
    verbose: bool = False,
) -> list[Outcome]:
    """
    Run every item's command with at most ``cap`` running at once.

    A failing or raising command never stops its siblings; it produces
    failure Outcomes for the items it covered.

    Args:
        items: Work to do, in the order results should come back
        runner: Called as ``runner(operation, packages)`` on a worker thread
        cap: Maximum concurrent commands
        sink: Progress sink updated as units start and finish
        batch_size: Items per command (1 runs one command per item)
        limiter: Shared limiter to use instead of a fresh one of size ``cap``
        verbose: Enable verbose logging

    Returns:
        One Outcome per item; ``outcomes[i].item is items[i]``

    Raises:
        ConfigurationError: If ``cap`` or ``batch_size`` is below 1
    """
    if cap < 1:
        raise ConfigurationError(f"Invalid concurrency cap: {cap}. Must be at least 1")
    batches = make_batches(items, batch_size)

    if not items:
        vlog("Nothing to fan out", verbose)
        return []

    if limiter is None:
        limiter = ExecutionLimiter(cap)
    if sink is None:
        sink = ProgressSink(total=len(items))

    outcomes: list[Outcome | None] = [None] * len(items)
    workers = min(cap, len(batches))
    vlog(f"Running {len(items)} item(s) as {len(batches)} command(s) with {workers} worker(s)", verbose)

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bbrew") as executor:
        future_to_batch = {
            executor.submit(_run_batch, batch, runner, limiter, sink, verbose): batch
            for batch in batches
        }
        for future in as_completed(future_to_batch):
            batch = future_to_batch[future]
            # _run_batch never raises; it turns every error into Outcomes
            for offset, outcome in enumerate(future.result()):
                outcomes[batch.start + offset] = outcome

    return [outcome for outcome in outcomes if outcome is not None]


def _run_batch(
    batch: WorkBatch,
    runner: CommandRunner,
    limiter: ExecutionLimiter,
    sink: ProgressSink,
    verbose: bool,
) -> list[Outcome]:
    """Run one batch under a limiter slot and report it on the sink."""
    start_time = time.monotonic()
    with limiter:
        sink.set_label(batch.label)
        try:
            result = runner(batch.operation, batch.packages)
        except Exception as e:
            vlog(f"Runner raised for {batch.label}: {e}", verbose)
            outcomes = [
                Outcome.failure(item, f"{type(e).__name__}: {e}",
                                duration_seconds=time.monotonic() - start_time)
                for item in batch.items
            ]
        else:
            duration = getattr(result, "duration_seconds", time.monotonic() - start_time)
            if result.success:
                outcomes = [Outcome.ok(item, duration) for item in batch.items]
            else:
                message = result.error_message or f"Command failed with exit code {result.exit_code}"
                outcomes = [
                    Outcome.failure(item, message, exit_code=result.exit_code, duration_seconds=duration)
                    for item in batch.items
                ]

    _report(batch, outcomes, sink)
    sink.advance(len(batch.items))
    return outcomes


def _report(batch: WorkBatch, outcomes: Sequence[Outcome], sink: ProgressSink) -> None:
    done = _VERBS[batch.operation][1]
    if all(outcome.success for outcome in outcomes):
        for outcome in outcomes:
            sink.println(f"✓ {done}: {outcome.package}")
    elif len(outcomes) == 1:
        sink.println(f"✗ Failed to {batch.operation}: {outcomes[0].package}")
    else:
        message = (outcomes[0].error_message or "").strip()
        sink.println(f"✗ Batch failed ({', '.join(batch.packages)}): {message}")
