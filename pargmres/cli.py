"""Command line driver: read a system, solve it on several ranks, report."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass

from pargmres.ca_gmres import ca_gmres_solve
from pargmres.comm import Communicator, run_parallel
from pargmres.gmres import gmres_solve, jacobi_preconditioner
from pargmres.localization import setup_communication
from pargmres.profiler import CommunicationProfiler
from pargmres.reader import MatrixReadError, read_rhs_vector, read_sparse_matrix
from pargmres.sparse_blas import LocalSystem, SolveResult
from pargmres.utility import command_syntax


class _UsageError(ValueError):
    """The command line could not be understood."""


class _Parser(argparse.ArgumentParser):
    def error(self, message):
        raise _UsageError(message)


@dataclass
class Options:
    """Settings for one solver run."""

    matrix_file: str
    rhs_file: str
    gmres_iterations: int
    preconditioner: bool
    max_restarts: int
    s_param: int = 1
    convergence_tol: float = 1e-10
    true_residual_tol: float = 1e-9
    num_procs: int = 1

    @property
    def use_ca_gmres(self) -> bool:
        return self.s_param > 1

    @property
    def algorithm_name(self) -> str:
        return "CA-GMRES" if self.use_ca_gmres else "Classical GMRES"


def parse_args(argv) -> Options:
    """Build :class:`Options` from command line words; raise ``ValueError`` on bad input."""
    parser = _Parser(prog="pargmres", add_help=False)
    parser.add_argument("-n", "--np", dest="num_procs", type=int, default=1)
    parser.add_argument("matrix_file")
    parser.add_argument("rhs_file")
    parser.add_argument("iterations", type=int)
    parser.add_argument("preconditioner_flag", type=int)
    parser.add_argument("restarts", type=int)
    parser.add_argument("s_param", type=int, nargs="?", default=1)
    parser.add_argument("tolerance", type=float, nargs="?", default=1e-10)
    ns = parser.parse_args(list(argv))
    if ns.num_procs < 1:
        raise _UsageError("the number of processes must be at least 1")
    if ns.iterations < 0:
        raise _UsageError("the iteration count must not be negative")
    if ns.s_param < 1:
        raise _UsageError("the s-step must be at least 1")
    return Options(
        matrix_file=ns.matrix_file,
        rhs_file=ns.rhs_file,
        gmres_iterations=ns.iterations,
        preconditioner=bool(ns.preconditioner_flag),
        max_restarts=ns.restarts,
        s_param=ns.s_param,
        convergence_tol=ns.tolerance,
        num_procs=ns.num_procs,
    )


def run_rank(comm: Communicator, options: Options) -> SolveResult:
    """Read, solve and report on one rank; every rank must call this.

    Rank 0 prints progress and the performance report and gets the full
    gathered solution in ``x``; the other ranks get their own rows.
    """
    is_root = comm.rank == 0

    def say(text: str) -> None:
        if is_root:
            print(text, end="", flush=True)

    profiler = CommunicationProfiler()
    say(
        "\n=== Communication Profiler Initialized ===\n"
        f"Processes: {comm.size}\n"
        "==========================================\n\n"
    )
    if options.use_ca_gmres:
        say(f"Info: Using CA-GMRES algorithm with s-step = {options.s_param}\n")
        say("Info: Features: delayed orthogonalization, non-blocking communications\n")
    else:
        say(f"Info: Using Classical GMRES algorithm (s-step = {options.s_param})\n")
    say(
        f"Info: max_restarts = {options.max_restarts}, "
        f"preconditioner = {'ON' if options.preconditioner else 'OFF'}\n"
    )

    matrix = read_sparse_matrix(options.matrix_file, comm.size, comm.rank)
    b = read_rhs_vector(options.rhs_file, comm, matrix.global_rows)
    plan = setup_communication(comm, matrix.global_rows, matrix.col_indices, matrix.row_ptr)
    system = LocalSystem(comm, plan, matrix.values, matrix.row_ptr, profiler)
    m_inv = (
        jacobi_preconditioner(matrix.values, plan.col_indices, matrix.row_ptr, plan.local_rows)
        if options.preconditioner
        else None
    )
    x = [0.0] * plan.vector_length
    solver = ca_gmres_solve if options.use_ca_gmres else gmres_solve

    say(f"\n=== Starting {options.algorithm_name} Solver ===\n")
    t_start = comm.wtime()
    result = solver(
        system,
        b,
        x,
        options.s_param,
        options.gmres_iterations,
        options.max_restarts,
        options.convergence_tol,
        options.true_residual_tol,
        m_inv,
    )
    t_end = comm.wtime()

    full_solution = comm.gather(result.x, 0)
    profiler.profile.total_time = t_end - t_start
    report = profiler.report(comm)
    if report is not None:
        say(report)
    if result.converged:
        say(
            f"\n{options.algorithm_name} algorithm converged successfully after "
            f"{result.total_iterations} total iterations.\n"
        )
    else:
        say(
            f"\nWarning: {options.algorithm_name} algorithm did not converge within "
            f"{options.max_restarts} restarts.\n"
        )
    profiler.reset()

    if full_solution is not None:
        return SolveResult(
            x=full_solution,
            converged=result.converged,
            total_iterations=result.total_iterations,
            true_residual=result.true_residual,
        )
    return result


def main(argv=None) -> int:
    """Entry point; returns the process exit status."""
    words = sys.argv[1:] if argv is None else argv
    try:
        options = parse_args(words)
    except ValueError:
        sys.stderr.write(command_syntax())
        return 1
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    try:
        run_parallel(options.num_procs, run_rank, options)
    except MatrixReadError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        print("Matrix reading failed. Aborting all processes.", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())