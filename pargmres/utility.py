"""Text formatting of matrices and arrays, and an orthogonality check."""

from __future__ import annotations

from typing import Sequence

from pargmres.comm import Communicator
from pargmres.sparse_blas import parallel_dot


def command_syntax() -> str:
    """Usage message for a run with missing or wrong arguments."""
    return (
        "\nError: Not enough or incorrect input arguments.\n"
        "Syntax: pargmres <matrix_file> <rhs_file> <iterations> "
        "<preconditioner_flag> <restarts>\n\n"
    )


def _format_matrix(name: str, rows: Sequence[Sequence], cell: str) -> str:
    lines = [f"\n--- Matrix: {name} ---\n"]
    for row in rows:
        lines.append(", ".join(format(value, cell) for value in row) + "\n")
    lines.append(f"--- End of Matrix: {name} ---\n\n")
    return "".join(lines)


def format_double_matrix(name: str, rows: Sequence[Sequence[float]]) -> str:
    """A floating-point matrix, one row per line, 7 decimals in 14 columns."""
    return _format_matrix(name, rows, "14.7f")


def format_int_matrix(name: str, rows: Sequence[Sequence[int]]) -> str:
    """An integer matrix, one row per line, 8 columns per value."""
    return _format_matrix(name, rows, "8d")


def _format_array(name: str, values: Sequence, cell: str) -> str:
    lines = [f"\n--- Array: {name} ---\n"]
    lines.extend(f"{name}[{i}] = {format(value, cell)}\n" for i, value in enumerate(values))
    lines.append(f"--- End of Array: {name} ---\n\n")
    return "".join(lines)


def format_double_array(name: str, values: Sequence[float]) -> str:
    """A floating-point array, one indexed entry per line."""
    return _format_array(name, values, "f")


def format_int_array(name: str, values: Sequence[int]) -> str:
    """An integer array, one indexed entry per line."""
    return _format_array(name, values, "d")


def check_orthogonality(
    comm: Communicator,
    name: str,
    V: Sequence[Sequence[float]],
    local_rows: int,
) -> str | None:
    """The matrix of inner products of the distributed vectors ``V``.

    Every rank must call this; rank 0 gets the formatted matrix, the
    others get ``None``. With no vectors nothing is computed.
    """
    if not V:
        return None
    gram = [
        [parallel_dot(comm, vi[:local_rows], vj[:local_rows]) for vj in V]
        for vi in V
    ]
    if comm.rank != 0:
        return None
    return format_double_matrix(name, gram)