"""Restarted GMRES with one reduction per inner product, and its Jacobi preconditioner."""

from __future__ import annotations

import logging
import math
from typing import Sequence

from pargmres.comm import ReduceOp
from pargmres.sparse_blas import LocalSystem, SolveResult, parallel_dot, s_step_arnoldi

_log = logging.getLogger(__name__)

_BREAKDOWN_TOL = 1e-12
_DIAGONAL_TOL = 1e-16


def jacobi_preconditioner(
    values: Sequence[float],
    col_indices: Sequence[int],
    row_ptr: Sequence[int],
    local_rows: int,
) -> list[float]:
    """Inverse diagonal of the local rows; 1.0 where the diagonal is missing or tiny.

    ``col_indices`` must already be local, so row ``i``'s diagonal sits in column ``i``.
    """
    m_inv = []
    for i, (start, end) in enumerate(zip(row_ptr[:local_rows], row_ptr[1 : local_rows + 1])):
        diag = next(
            (v for v, c in zip(values[start:end], col_indices[start:end]) if c == i),
            0.0,
        )
        m_inv.append(1.0 / diag if abs(diag) > _DIAGONAL_TOL else 1.0)
    return m_inv


def _rotate_column(H, g, cos, sin, col: int) -> None:
    """Apply the earlier Givens rotations to column ``col`` and form a new one."""
    for j in range(col):
        upper, lower = H[j][col], H[j + 1][col]
        H[j][col] = cos[j] * upper + sin[j] * lower
        H[j + 1][col] = -sin[j] * upper + cos[j] * lower

    diag, sub = H[col][col], H[col + 1][col]
    gamma = math.sqrt(diag * diag + sub * sub)
    if gamma > _BREAKDOWN_TOL:
        cos[col], sin[col] = diag / gamma, sub / gamma
    else:
        cos[col], sin[col] = 1.0, 0.0
    H[col][col] = gamma
    g[col + 1] = -sin[col] * g[col]
    g[col] = cos[col] * g[col]


def _back_substitute(H, g, size: int) -> list[float]:
    alpha = [0.0] * size
    for j in reversed(range(size)):
        value = g[j]
        for h, a in zip(H[j][j + 1 : size], alpha[j + 1 :]):
            value -= h * a
        if abs(H[j][j]) > _BREAKDOWN_TOL:
            value /= H[j][j]
        alpha[j] = value
    return alpha


def gmres_solve(
    system: LocalSystem,
    b: Sequence[float],
    x: Sequence[float],
    s_param: int,
    gmres_iterations: int,
    max_restarts: int,
    convergence_tol: float,
    true_residual_tol: float,
    m_inv: Sequence[float] | None = None,
) -> SolveResult:
    """Solve ``A x = b`` with restarted GMRES starting from ``x``.

    The Arnoldi process runs in blocks of ``s_param`` steps, each inner
    product a separate reduction. ``b`` and ``x`` hold this rank's rows;
    the caller's ``x`` is not modified. ``m_inv`` is a diagonal left
    preconditioner. Every rank must call this.
    """
    if s_param < 1:
        raise ValueError("s_param must be at least 1")
    if gmres_iterations < 0:
        raise ValueError("gmres_iterations must not be negative")
    comm = system.comm
    rows = system.local_rows
    n_total = system.vector_length
    if len(b) < rows or len(x) < rows:
        raise ValueError(f"b and x must hold at least {rows} entries")
    m = gmres_iterations

    solution = list(x[:rows]) + [0.0] * (n_total - rows)
    V = [[0.0] * n_total for _ in range(m + 1)]
    H = [[0.0] * m for _ in range(m + 1)]
    g = [0.0] * (m + 1)
    cos = [0.0] * m
    sin = [0.0] * m

    converged = False
    total_iterations = 0
    true_residual: float | None = None

    for restart in range(max_restarts):
        ax = system.matvec(solution)
        r0 = [bi - ai for bi, ai in zip(b, ax)]
        if m_inv is not None:
            r0 = [r * mi for r, mi in zip(r0, m_inv)]
        norm_r0 = math.sqrt(parallel_dot(comm, r0, r0, system.profiler))
        if comm.rank == 0:
            _log.info(
                "Classical GMRES Restart %d, initial preconditioned residual norm = %e",
                restart,
                norm_r0,
            )

        k_final = 0
        if norm_r0 > 0.0:
            V[0][:rows] = [r / norm_r0 for r in r0]
            g[:] = [norm_r0] + [0.0] * m
            k_final = m
            inner_converged = False
            for k in range(0, m, s_param):
                current_s = min(s_param, m - k)
                s_step_arnoldi(system, current_s, k, V, H, m_inv)
                for col in range(k, k + current_s):
                    _rotate_column(H, g, cos, sin, col)
                    if abs(g[col + 1]) < convergence_tol:
                        inner_converged = True
                        k_final = col + 1
                        break
                if inner_converged:
                    break
        total_iterations += k_final

        alpha = _back_substitute(H, g, k_final)
        for a, basis in zip(alpha, V):
            solution[:rows] = [xi + a * vi for xi, vi in zip(solution[:rows], basis)]

        ax = system.matvec(solution)
        local_sq = 0.0
        for bi, ai in zip(b, ax):
            diff = bi - ai
            local_sq += diff * diff
        true_residual = math.sqrt(comm.allreduce(local_sq, ReduceOp.SUM))
        if comm.rank == 0:
            _log.info(
                "Classical GMRES Restart %d, true residual norm after update = %e",
                restart,
                true_residual,
            )
        if true_residual < true_residual_tol:
            converged = True
            break

    return SolveResult(
        x=solution[:rows],
        converged=converged,
        total_iterations=total_iterations,
        true_residual=true_residual,
    )