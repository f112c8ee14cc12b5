"""Ghost-column discovery and halo exchange for row-distributed sparse matrices."""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from typing import MutableSequence, Sequence

from pargmres.comm import Communicator, block_partition
from pargmres.profiler import CommunicationProfiler

_LIST_TAG = 1
_SYNC_TAG = 100


@dataclass
class CommunicationPlan:
    """What one rank exchanges with its peers before each matrix-vector product.

    ``col_indices`` are the matrix column indices rewritten to local vector
    positions: owned columns map to ``0 .. local_rows - 1`` and every ghost
    column gets a slot after them, in order of first appearance.
    ``ghost_columns[i]`` is the global column held at ``local_rows + i``.
    ``send_lists[p]`` are local positions whose values rank ``p`` needs;
    ``recv_lists[p]`` are ghost positions filled from rank ``p``.
    """

    rank: int
    local_rows: int
    row_offset: int
    col_indices: list[int]
    ghost_columns: list[int] = field(default_factory=list)
    send_lists: dict[int, list[int]] = field(default_factory=dict)
    recv_lists: dict[int, list[int]] = field(default_factory=dict)

    @property
    def send_counts(self) -> dict[int, int]:
        return {p: len(items) for p, items in self.send_lists.items()}

    @property
    def recv_counts(self) -> dict[int, int]:
        return {p: len(items) for p, items in self.recv_lists.items()}

    @property
    def vector_length(self) -> int:
        """Length a local vector needs to hold owned entries and ghosts."""
        return self.local_rows + len(self.ghost_columns)


def setup_communication(
    comm: Communicator,
    global_rows: int,
    col_indices: Sequence[int],
    row_ptr: Sequence[int],
) -> CommunicationPlan:
    """Find the ghost columns of this rank's rows and agree on exchanges.

    ``col_indices`` are global 0-based column indices of the local rows in
    compressed row storage; they are not modified. Every rank must call
    this, as it exchanges messages with all the others.
    """
    blocks = block_partition(global_rows, comm.size)
    mine = blocks[comm.rank]
    local_rows = len(mine)
    if len(row_ptr) < local_rows + 1:
        raise ValueError(
            f"row_ptr holds {len(row_ptr)} entries, {local_rows + 1} are needed"
        )
    starts = [block.start for block in blocks]

    ghost_slot: dict[int, int] = {}
    ghost_columns: list[int] = []
    recv_lists: dict[int, list[int]] = {}
    expected: dict[int, list[int]] = {}
    localized: list[int] = list(col_indices)

    for j in range(row_ptr[0], row_ptr[local_rows]):
        column = col_indices[j]
        if not 0 <= column < global_rows:
            raise ValueError(f"column index {column} outside matrix of {global_rows} rows")
        owner = bisect.bisect_right(starts, column) - 1
        if owner == comm.rank:
            localized[j] = column - mine.start
            continue
        slot = ghost_slot.get(column)
        if slot is None:
            slot = local_rows + len(ghost_columns)
            ghost_slot[column] = slot
            ghost_columns.append(column)
            recv_lists.setdefault(owner, []).append(slot)
            expected.setdefault(owner, []).append(column)
        localized[j] = slot

    peers = [p for p in range(comm.size) if p != comm.rank]
    for p in peers:
        comm.send(p, _LIST_TAG, expected.get(p, []))
    send_lists: dict[int, list[int]] = {}
    for p in peers:
        wanted = comm.recv(p, _LIST_TAG)
        if wanted:
            send_lists[p] = [column - mine.start for column in wanted]

    return CommunicationPlan(
        rank=comm.rank,
        local_rows=local_rows,
        row_offset=mine.start,
        col_indices=localized,
        ghost_columns=ghost_columns,
        send_lists=send_lists,
        recv_lists=recv_lists,
    )


def synchronize_vector(
    comm: Communicator,
    plan: CommunicationPlan,
    vector: MutableSequence[float],
    profiler: CommunicationProfiler | None = None,
) -> None:
    """Fill the ghost entries of ``vector`` in place from the owning ranks.

    Every rank must call this with its own plan.
    """
    if len(vector) < plan.vector_length:
        raise ValueError(
            f"vector of length {len(vector)} cannot hold {plan.vector_length} entries"
        )
    start = comm.wtime()
    for p, positions in plan.send_lists.items():
        comm.send(p, _SYNC_TAG, [vector[i] for i in positions])
    for p, positions in plan.recv_lists.items():
        for i, value in zip(positions, comm.recv(p, _SYNC_TAG)):
            vector[i] = value
    if profiler is not None:
        profiler.record_vector_sync(comm.wtime() - start)


def format_communication_plan(comm: Communicator, plan: CommunicationPlan) -> str | None:
    """Describe every rank's plan in rank order; rank 0 gets the text.

    Every rank must call this, as it gathers the descriptions.
    """
    lines = [f"\n--- Communication Plan for Process {comm.rank} ---\n"]
    for p, count in sorted(plan.recv_counts.items()):
        lines.append(f"    Will receive {count} elements from process {p}.\n")
    for p, count in sorted(plan.send_counts.items()):
        lines.append(f"    Will send {count} elements to process {p}.\n")
    lines.append(f"--- End of Plan for Process {comm.rank} ---\n")
    texts = comm.gather(["".join(lines)], 0)
    return "".join(texts) if texts is not None else None