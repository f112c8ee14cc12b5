import pytest

from pargmres.ca_gmres import ca_gmres_solve
from pargmres.comm import Communicator, block_partition, run_parallel
from pargmres.gmres import gmres_solve, jacobi_preconditioner
from pargmres.localization import setup_communication
from pargmres.sparse_blas import LocalSystem

TRIDIAG = [
    [4.0 if i == j else (-1.0 if abs(i - j) == 1 else 0.0) for j in range(6)]
    for i in range(6)
]
RHS = [1.0, 2.0, 3.0, 4.0, 5.0, 6.0]


def _csr(rows):
    values, cols, row_ptr = [], [], [0]
    for row in rows:
        for j, v in enumerate(row):
            if v:
                values.append(v)
                cols.append(j)
        row_ptr.append(len(values))
    return values, cols, row_ptr


def _system(comm, dense, block):
    values, cols, row_ptr = _csr([dense[i] for i in block])
    plan = setup_communication(comm, len(dense), cols, row_ptr)
    return LocalSystem(comm, plan, values, row_ptr)


def _residual(dense, x, b):
    return max(abs(bi - sum(a * xj for a, xj in zip(row, x))) for row, bi in zip(dense, b))


def _solve_serial(dense, b, s_param=1, m_inv=None):
    comm = Communicator()
    system = _system(comm, dense, range(len(dense)))
    return gmres_solve(system, b, [0.0] * len(b), s_param, 10, 5, 1e-10, 1e-9, m_inv)


def test_tridiagonal_system_converges():
    result = _solve_serial(TRIDIAG, RHS)
    assert result.converged
    assert _residual(TRIDIAG, result.x, RHS) < 1e-8
    assert result.true_residual < 1e-9


def test_identity_converges_in_one_iteration():
    identity = [[1.0 if i == j else 0.0 for j in range(3)] for i in range(3)]
    b = [3.0, -1.0, 2.0]
    result = _solve_serial(identity, b)
    assert result.converged
    assert result.total_iterations == 1
    assert result.x == pytest.approx(b)


def test_jacobi_makes_diagonal_system_one_step():
    diagonal = [[1.0, 0.0, 0.0], [0.0, 2.0, 0.0], [0.0, 0.0, 3.0]]
    b = [1.0, 4.0, 9.0]
    values, cols, row_ptr = _csr(diagonal)
    m_inv = jacobi_preconditioner(values, cols, row_ptr, 3)
    result = _solve_serial(diagonal, b, m_inv=m_inv)
    assert result.converged
    assert result.total_iterations == 1
    assert _residual(diagonal, result.x, b) < 1e-9


def test_zero_rhs_from_zero_start_needs_no_iterations():
    result = _solve_serial(TRIDIAG, [0.0] * 6)
    assert result.converged
    assert result.total_iterations == 0
    assert result.x == [0.0] * 6


def test_block_size_does_not_change_solution():
    one = _solve_serial(TRIDIAG, RHS, s_param=1)
    three = _solve_serial(TRIDIAG, RHS, s_param=3)
    assert three.converged
    assert three.x == pytest.approx(one.x, abs=1e-9)


def test_matches_ca_gmres():
    comm = Communicator()
    system = _system(comm, TRIDIAG, range(6))
    classical = gmres_solve(system, RHS, [0.0] * 6, 1, 10, 5, 1e-10, 1e-9)
    ca = ca_gmres_solve(system, RHS, [0.0] * 6, 2, 10, 5, 1e-10, 1e-9)
    assert classical.x == pytest.approx(ca.x, abs=1e-9)


def test_caller_start_vector_is_untouched():
    start = [0.0] * 6
    comm = Communicator()
    system = _system(comm, TRIDIAG, range(6))
    gmres_solve(system, RHS, start, 1, 10, 5, 1e-10, 1e-9)
    assert start == [0.0] * 6


def test_no_restarts_leaves_start_vector():
    comm = Communicator()
    system = _system(comm, TRIDIAG, range(6))
    result = gmres_solve(system, RHS, [0.5] * 6, 1, 10, 0, 1e-10, 1e-9)
    assert not result.converged
    assert result.total_iterations == 0
    assert result.x == [0.5] * 6


def test_parallel_solution_matches_serial():
    serial = _solve_serial(TRIDIAG, RHS)

    def rank_solve(comm):
        block = block_partition(6, comm.size)[comm.rank]
        system = _system(comm, TRIDIAG, block)
        b = RHS[block.start : block.stop]
        return gmres_solve(system, b, [0.0] * len(b), 1, 10, 5, 1e-10, 1e-9)

    results = run_parallel(2, rank_solve)
    assert all(r.converged for r in results)
    combined = results[0].x + results[1].x
    assert combined == pytest.approx(serial.x, abs=1e-9)


def test_invalid_block_size_rejected():
    comm = Communicator()
    system = _system(comm, TRIDIAG, range(6))
    with pytest.raises(ValueError):
        gmres_solve(system, RHS, [0.0] * 6, 0, 10, 5, 1e-10, 1e-9)


def test_short_rhs_rejected():
    comm = Communicator()
    system = _system(comm, TRIDIAG, range(6))
    with pytest.raises(ValueError):
        gmres_solve(system, RHS[:3], [0.0] * 6, 1, 10, 5, 1e-10, 1e-9)


def test_jacobi_inverts_diagonal():
    assert jacobi_preconditioner([4.0, 1.0, 2.0], [0, 1, 1], [0, 2, 3], 2) == [0.25, 0.5]


def test_jacobi_missing_or_tiny_diagonal_gives_one():
    assert jacobi_preconditioner([3.0], [1], [0, 1, 1], 2) == [1.0, 1.0]
    assert jacobi_preconditioner([1e-20], [0], [0, 1], 1) == [1.0]