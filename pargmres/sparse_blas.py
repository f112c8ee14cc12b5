"""Sparse kernels, distributed inner products and the classical Arnoldi step."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import MutableSequence, Sequence

from pargmres.comm import Communicator, ReduceOp
from pargmres.localization import CommunicationPlan, synchronize_vector
from pargmres.profiler import CommunicationProfiler

_BREAKDOWN_TOL = 1e-12


@dataclass
class LocalSystem:
    """One rank's rows of a distributed matrix with its exchange plan."""

    comm: Communicator
    plan: CommunicationPlan
    values: list[float]
    row_ptr: list[int]
    profiler: CommunicationProfiler | None = None

    @property
    def col_indices(self) -> list[int]:
        return self.plan.col_indices

    @property
    def local_rows(self) -> int:
        return self.plan.local_rows

    @property
    def vector_length(self) -> int:
        return self.plan.vector_length

    def matvec(self, vector: MutableSequence[float]) -> list[float]:
        """Refresh the ghosts of ``vector`` in place and return the local rows of A·vector."""
        synchronize_vector(self.comm, self.plan, vector, self.profiler)
        return sparse_matvec(self.values, self.col_indices, self.row_ptr, vector, self.local_rows)


@dataclass
class SolveResult:
    """Outcome of a restarted GMRES solve on one rank."""

    x: list[float]
    converged: bool
    total_iterations: int
    true_residual: float | None = None


def sparse_matvec(
    values: Sequence[float],
    col_indices: Sequence[int],
    row_ptr: Sequence[int],
    vector: Sequence[float],
    local_rows: int,
) -> list[float]:
    """Product of the first ``local_rows`` CSR rows with ``vector``."""
    result = []
    for start, end in zip(row_ptr[:local_rows], row_ptr[1 : local_rows + 1]):
        total = 0.0
        for value, column in zip(values[start:end], col_indices[start:end]):
            total += value * vector[column]
        result.append(total)
    return result


def parallel_dot(
    comm: Communicator,
    a: Sequence[float],
    b: Sequence[float],
    profiler: CommunicationProfiler | None = None,
) -> float:
    """Global inner product of two row-distributed vectors' owned parts."""
    if len(a) != len(b):
        raise ValueError(f"vectors differ in length: {len(a)} and {len(b)}")
    start = comm.wtime()
    local = 0.0
    for x, y in zip(a, b):
        local += x * y
    if profiler is not None:
        profiler.record_computation(comm.wtime() - start)
    comm_start = comm.wtime()
    result = comm.allreduce(local, ReduceOp.SUM)
    if profiler is not None and comm.rank == 0:
        profiler.record_inner_product(comm.wtime() - comm_start)
    return result


def parallel_norm(comm: Communicator, vector: Sequence[float]) -> float:
    """Global 2-norm of a row-distributed vector's owned part."""
    local = 0.0
    for x in vector:
        local += x * x
    return math.sqrt(comm.allreduce(local, ReduceOp.SUM))


def s_step_arnoldi(
    system: LocalSystem,
    s: int,
    k: int,
    V: list[list[float]],
    H: list[list[float]],
    m_inv: Sequence[float] | None = None,
) -> None:
    """Extend the Krylov basis ``V`` and Hessenberg matrix ``H`` by ``s`` columns.

    Columns ``k`` to ``k + s - 1`` of ``H`` and vectors ``V[k + 1]`` to
    ``V[k + s]`` are written in place, using classical Gram-Schmidt with one
    reduction per inner product. ``m_inv`` is a diagonal left preconditioner.
    """
    comm = system.comm
    profiler = system.profiler
    rows = system.local_rows

    def timed(start: float) -> None:
        if profiler is not None:
            profiler.record_computation(comm.wtime() - start)

    for current in range(k, k + s):
        w = V[current + 1]
        if profiler is not None:
            profiler.record_iteration()
        synchronize_vector(comm, system.plan, V[current], profiler)

        start = comm.wtime()
        product = sparse_matvec(system.values, system.col_indices, system.row_ptr, V[current], rows)
        if m_inv is not None:
            product = [p * m for p, m in zip(product, m_inv)]
        w[:rows] = product
        timed(start)

        for j in range(current + 1):
            coeff = parallel_dot(comm, w[:rows], V[j][:rows], profiler)
            H[j][current] = coeff
            start = comm.wtime()
            w[:rows] = [wl - coeff * vl for wl, vl in zip(w[:rows], V[j])]
            timed(start)

        norm = math.sqrt(parallel_dot(comm, w[:rows], w[:rows], profiler))
        H[current + 1][current] = norm
        if norm > _BREAKDOWN_TOL:
            start = comm.wtime()
            w[:rows] = [x / norm for x in w[:rows]]
            timed(start)


def batch_matvec(
    values: Sequence[float],
    col_indices: Sequence[int],
    row_ptr: Sequence[int],
    vectors: Sequence[Sequence[float]],
    local_rows: int,
) -> list[list[float]]:
    """Apply the same CSR rows to each of ``vectors``."""
    return [sparse_matvec(values, col_indices, row_ptr, v, local_rows) for v in vectors]


def modified_gram_schmidt(
    comm: Communicator,
    w: Sequence[float],
    V: Sequence[Sequence[float]],
    k: int,
    profiler: CommunicationProfiler | None = None,
) -> tuple[list[float], list[float]]:
    """Orthogonalize ``w`` against ``V[:k]`` one vector at a time.

    Returns the orthogonalized vector and the projection coefficients.
    Only the first ``len(w)`` entries of each basis vector take part.
    """
    result = list(w)
    size = len(result)
    coefficients = []
    for basis in V[:k]:
        coeff = parallel_dot(comm, result, basis[:size], profiler)
        result = [x - coeff * b for x, b in zip(result, basis)]
        coefficients.append(coeff)
    return result, coefficients


def scale_vector(vector: Sequence[float], scale: float) -> list[float]:
    """Each entry multiplied by ``scale``."""
    return [x * scale for x in vector]


def add_scaled_vector(dst: Sequence[float], src: Sequence[float], alpha: float) -> list[float]:
    """``dst + alpha * src``; the vectors must have equal length."""
    if len(dst) != len(src):
        raise ValueError(f"vectors differ in length: {len(dst)} and {len(src)}")
    return [d + alpha * s for d, s in zip(dst, src)]