"""Restarted s-step GMRES with batched inner products."""

from __future__ import annotations

import logging
import math
from typing import Sequence

from pargmres.comm import Communicator, ReduceOp
from pargmres.sparse_blas import LocalSystem, SolveResult, parallel_dot

_log = logging.getLogger(__name__)

_BREAKDOWN_TOL = 1e-12


def batch_inner_products(
    comm: Communicator,
    vectors: Sequence[Sequence[float]],
    target: Sequence[float],
    local_size: int,
) -> list[float]:
    """Inner products of ``target`` with each of ``vectors`` in one reduction.

    Only the first ``local_size`` entries take part. Every rank must call this.
    """
    local = []
    for vector in vectors:
        total = 0.0
        for a, b in zip(vector[:local_size], target[:local_size]):
            total += a * b
        local.append(total)
    return comm.allreduce(local, ReduceOp.SUM)


def ca_s_step_arnoldi(
    system: LocalSystem,
    s: int,
    k: int,
    V: list[list[float]],
    H: list[list[float]],
    m_inv: Sequence[float] | None = None,
) -> None:
    """Extend ``V`` and ``H`` by up to ``s`` Arnoldi columns starting at ``k``.

    All projections of a new vector are gathered in a single reduction.
    Steps stop early once the column index reaches the local vector length.
    On breakdown the new basis vector and its subdiagonal entry are zeroed.
    """
    comm = system.comm
    rows = system.local_rows
    n_total = system.vector_length
    if comm.rank == 0:
        _log.info("Starting Stable CA s-step Arnoldi with s=%d, k=%d", s, k)

    for current in range(k, k + s):
        if current >= n_total:
            break
        product = system.matvec(V[current])
        if m_inv is not None:
            product = [p * m for p, m in zip(product, m_inv)]

        if current == 0:
            coeff = parallel_dot(comm, product, V[0][:rows], system.profiler)
            H[0][0] = coeff
            product = [p - coeff * v for p, v in zip(product, V[0])]
        else:
            coeffs = batch_inner_products(comm, V[: current + 1], product, rows)
            for i, coeff in enumerate(coeffs):
                H[i][current] = coeff
            for coeff, basis in zip(coeffs, V):
                product = [p - coeff * v for p, v in zip(product, basis)]

        norm = math.sqrt(parallel_dot(comm, product, product, system.profiler))
        H[current + 1][current] = norm
        target = V[current + 1]
        if norm > _BREAKDOWN_TOL:
            target[:rows] = [p / norm for p in product]
        else:
            if comm.rank == 0:
                _log.warning("Breakdown detected at iteration %d, norm = %e", current, norm)
            target[:rows] = [0.0] * rows
            H[current + 1][current] = 0.0

    if comm.rank == 0:
        _log.info("Stable CA s-step Arnoldi completed for block k=%d to k=%d", k, k + s - 1)


def _rotate_column(H, g, cos, sin, col: int) -> None:
    """Apply earlier Givens rotations to column ``col`` and eliminate its subdiagonal."""
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
    H[col + 1][col] = 0.0
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


def ca_gmres_solve(
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
    """Solve ``A x = b`` with restarted s-step GMRES starting from ``x``.

    ``b`` and ``x`` hold this rank's rows; the caller's ``x`` is not
    modified. ``m_inv`` is a diagonal left preconditioner. Every rank
    must call this.
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

    if comm.rank == 0:
        _log.info("Starting Numerically Stable CA-GMRES with s-step = %d", s_param)
        _log.info("Using modified Gram-Schmidt with batched communications")

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
            _log.info("CA-GMRES Restart %d, initial residual norm = %e", restart, norm_r0)
        if norm_r0 < true_residual_tol:
            converged = True
            break

        V[0][:rows] = [r / norm_r0 for r in r0]
        g[:] = [norm_r0] + [0.0] * m

        k_final = m
        inner_converged = False
        for k in range(0, m, s_param):
            current_s = min(s_param, m - k)
            if comm.rank == 0:
                _log.info("CA-GMRES s-step block: iterations %d to %d", k, k + current_s - 1)
            ca_s_step_arnoldi(system, current_s, k, V, H, m_inv)
            for col in range(k, k + current_s):
                _rotate_column(H, g, cos, sin, col)
                if abs(g[col + 1]) < convergence_tol:
                    inner_converged = True
                    k_final = col + 1
                    if comm.rank == 0:
                        _log.info(
                            "CA-GMRES converged at iteration %d, residual = %e",
                            col + 1,
                            abs(g[col + 1]),
                        )
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
            _log.info("CA-GMRES Restart %d, true residual norm = %e", restart, true_residual)
        if true_residual < true_residual_tol:
            converged = True
            break

    return SolveResult(
        x=solution[:rows],
        converged=converged,
        total_iterations=total_iterations,
        true_residual=true_residual,
    )