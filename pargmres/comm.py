"""In-process message passing between ranks that run as threads."""

from __future__ import annotations

import copy
import enum
import functools
import operator
import queue
import threading
import time
from collections.abc import Callable, Sequence
from typing import Any


class CommunicatorAborted(RuntimeError):
    """Raised in a rank when another rank failed and the run was aborted."""


class ReduceOp(enum.Enum):
    """Reduction operations for :meth:`Communicator.allreduce`."""

    SUM = "sum"
    MAX = "max"
    MIN = "min"

    def combine(self, items: Sequence[Any]) -> Any:
        if self is ReduceOp.SUM:
            return functools.reduce(operator.add, items)
        if self is ReduceOp.MAX:
            return max(items)
        return min(items)


class _World:
    """State shared by every rank of one parallel run."""

    def __init__(self, size: int) -> None:
        self.size = size
        self.barrier = threading.Barrier(size)
        self.slots: list[Any] = [None] * size
        self.scatter_buffer: list[list[Any]] = []
        self._mailboxes: dict[tuple[int, int, int], queue.Queue] = {}
        self._lock = threading.Lock()
        self.aborted = threading.Event()

    def mailbox(self, source: int, dest: int, tag: int) -> queue.Queue:
        with self._lock:
            return self._mailboxes.setdefault((source, dest, tag), queue.Queue())

    def abort(self) -> None:
        self.aborted.set()
        self.barrier.abort()


class Communicator:
    """One rank's view of a group of cooperating ranks.

    Created with no arguments it is a single-rank communicator, so serial
    code can use the same collective calls.
    """

    def __init__(self, world: _World | None = None, rank: int = 0) -> None:
        self._world = world if world is not None else _World(1)
        if not 0 <= rank < self._world.size:
            raise ValueError(f"rank {rank} outside communicator of size {self._world.size}")
        self._rank = rank

    @property
    def rank(self) -> int:
        return self._rank

    @property
    def size(self) -> int:
        return self._world.size

    def _wait(self) -> None:
        try:
            self._world.barrier.wait()
        except threading.BrokenBarrierError:
            raise CommunicatorAborted("parallel run was aborted") from None

    def allreduce(self, values: Any, op: ReduceOp = ReduceOp.SUM) -> Any:
        """Combine a scalar or an equal-length sequence across all ranks."""
        scalar = not isinstance(values, Sequence)
        self._world.slots[self._rank] = values if scalar else list(values)
        self._wait()
        contributions = list(self._world.slots)
        self._wait()
        if scalar:
            return op.combine(contributions)
        if len({len(c) for c in contributions}) != 1:
            raise ValueError("allreduce requires sequences of equal length on every rank")
        return [op.combine(column) for column in zip(*contributions)]

    def send(self, dest: int, tag: int, payload: Any) -> None:
        """Queue a message for ``dest``; never blocks."""
        if not 0 <= dest < self.size:
            raise ValueError(f"destination rank {dest} does not exist")
        self._world.mailbox(self._rank, dest, tag).put(copy.copy(payload))

    def recv(self, source: int, tag: int) -> Any:
        """Block until a message from ``source`` with ``tag`` arrives."""
        if not 0 <= source < self.size:
            raise ValueError(f"source rank {source} does not exist")
        box = self._world.mailbox(source, self._rank, tag)
        while True:
            try:
                return box.get(timeout=0.05)
            except queue.Empty:
                if self._world.aborted.is_set():
                    raise CommunicatorAborted("parallel run was aborted") from None

    def barrier(self) -> None:
        self._wait()

    def gather(self, values: Sequence[Any], root: int = 0) -> list[Any] | None:
        """Concatenate every rank's values in rank order on ``root``."""
        self._world.slots[self._rank] = list(values)
        self._wait()
        result = None
        if self._rank == root:
            result = [item for chunk in self._world.slots for item in chunk]
        self._wait()
        return result

    def scatter(self, chunks: Sequence[Sequence[Any]] | None, root: int = 0) -> list[Any]:
        """Hand chunk ``i`` of the root's ``chunks`` to rank ``i``."""
        if self._rank == root:
            if chunks is None or len(chunks) != self.size:
                self._world.abort()
                raise ValueError("scatter requires one chunk per rank on the root")
            self._world.scatter_buffer = [list(chunk) for chunk in chunks]
        self._wait()
        mine = list(self._world.scatter_buffer[self._rank])
        self._wait()
        return mine

    def wtime(self) -> float:
        return time.perf_counter()


def block_partition(global_rows: int, num_procs: int) -> list[range]:
    """Split rows into contiguous blocks; the first ``rows % procs`` get one extra."""
    if num_procs < 1:
        raise ValueError("num_procs must be at least 1")
    if global_rows < 0:
        raise ValueError("global_rows must not be negative")
    base, extra = divmod(global_rows, num_procs)
    parts = []
    offset = 0
    for rank in range(num_procs):
        count = base + (1 if rank < extra else 0)
        parts.append(range(offset, offset + count))
        offset += count
    return parts


def run_parallel(size: int, func: Callable[..., Any], *args: Any) -> list[Any]:
    """Run ``func(comm, *args)`` on ``size`` ranks and return their results.

    If any rank raises, the others are aborted and the first genuine
    exception is re-raised.
    """
    if size < 1:
        raise ValueError("size must be at least 1")
    world = _World(size)
    results: list[Any] = [None] * size
    errors: list[BaseException | None] = [None] * size

    def worker(rank: int) -> None:
        try:
            results[rank] = func(Communicator(world, rank), *args)
        except BaseException as exc:  # noqa: BLE001 - re-raised below
            errors[rank] = exc
            world.abort()

    threads = [threading.Thread(target=worker, args=(rank,), daemon=True) for rank in range(size)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    raised = [e for e in errors if e is not None]
    if raised:
        primary = next((e for e in raised if not isinstance(e, CommunicatorAborted)), raised[0])
        raise primary
    return results