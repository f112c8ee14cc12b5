"""Reading coordinate-format sparse matrices and right-hand sides by row block."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from pargmres.comm import Communicator, block_partition


class MatrixReadError(Exception):
    """A matrix or right-hand-side file could not be read."""


@dataclass
class LocalMatrix:
    """The block of rows a rank owns, in compressed row storage."""

    global_rows: int
    global_cols: int
    total_non_zeros: int
    start_row: int
    row_ptr: list[int]
    col_indices: list[int]
    values: list[float]

    @property
    def local_rows(self) -> int:
        return len(self.row_ptr) - 1

    @property
    def local_non_zeros(self) -> int:
        return len(self.values)


def _read_text(path, what: str) -> str:
    try:
        return Path(path).read_text()
    except OSError as exc:
        raise MatrixReadError(f"Could not open {what} file '{path}'.") from exc


def read_sparse_matrix(path, num_procs: int, rank: int) -> LocalMatrix:
    """Read the rows of a coordinate-format matrix that belong to ``rank``.

    The first non-comment line holds ``rows cols nnz``; each following
    entry is a 1-based ``row col value`` triple. Column indices in the
    result are global and 0-based, in the order the file lists them.
    """
    if num_procs < 1 or not 0 <= rank < num_procs:
        raise ValueError(f"invalid rank {rank} for {num_procs} processes")
    text = _read_text(path, "matrix")
    tokens = " ".join(
        line for line in text.splitlines() if not line.lstrip().startswith("%")
    ).split()
    try:
        global_rows, global_cols, total_nnz = (int(t) for t in tokens[:3])
    except ValueError as exc:
        raise MatrixReadError(f"Malformed header in matrix file '{path}'.") from exc
    if len(tokens) < 3:
        raise MatrixReadError(f"Missing header in matrix file '{path}'.")

    block = block_partition(global_rows, num_procs)[rank]
    rows: list[list[tuple[int, float]]] = [[] for _ in block]
    entries = tokens[3:]
    if len(entries) < 3 * total_nnz:
        raise MatrixReadError(
            f"Matrix file '{path}' holds fewer than {total_nnz} entries."
        )
    for n in range(total_nnz):
        row_tok, col_tok, val_tok = entries[3 * n : 3 * n + 3]
        try:
            row, col, val = int(row_tok) - 1, int(col_tok) - 1, float(val_tok)
        except ValueError as exc:
            raise MatrixReadError(f"Malformed entry {n + 1} in matrix file '{path}'.") from exc
        if row in block:
            rows[row - block.start].append((col, val))

    row_ptr = [0]
    col_indices: list[int] = []
    values: list[float] = []
    for entries_of_row in rows:
        for col, val in entries_of_row:
            col_indices.append(col)
            values.append(val)
        row_ptr.append(len(values))

    return LocalMatrix(
        global_rows=global_rows,
        global_cols=global_cols,
        total_non_zeros=total_nnz,
        start_row=block.start,
        row_ptr=row_ptr,
        col_indices=col_indices,
        values=values,
    )


def find_max(values: Iterable[int]) -> int:
    """Largest value, or -1 for an empty collection."""
    return max(values, default=-1)


def read_rhs_vector(path, comm: Communicator, global_rows: int) -> list[float]:
    """Rank 0 reads ``global_rows`` numbers; every rank gets its row block.

    Every rank must call this, as it performs a scatter.
    """
    chunks = None
    if comm.rank == 0:
        try:
            tokens = _read_text(path, "RHS").split()
            values = []
            for i in range(global_rows):
                try:
                    values.append(float(tokens[i]))
                except (IndexError, ValueError) as exc:
                    raise MatrixReadError(
                        f"Failed to read value from RHS file at line {i + 1}."
                    ) from exc
            chunks = [values[r.start : r.stop] for r in block_partition(global_rows, comm.size)]
        except MatrixReadError:
            comm._world.abort()
            raise
    return comm.scatter(chunks, 0)