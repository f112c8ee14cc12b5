import pytest

from pargmres.comm import Communicator, block_partition, run_parallel
from pargmres.utility import (
    check_orthogonality,
    command_syntax,
    format_double_array,
    format_double_matrix,
    format_int_array,
    format_int_matrix,
)


def test_command_syntax_mentions_arguments():
    text = command_syntax()
    assert text.startswith("\nError: Not enough or incorrect input arguments.\n")
    assert "<matrix_file> <rhs_file> <iterations> <preconditioner_flag> <restarts>" in text
    assert text.endswith("\n\n")


def test_format_double_matrix_layout():
    text = format_double_matrix("M", [[1.0, 2.5]])
    assert text == (
        "\n--- Matrix: M ---\n"
        "     1.0000000,      2.5000000\n"
        "--- End of Matrix: M ---\n\n"
    )


def test_format_int_matrix_layout():
    text = format_int_matrix("I", [[1, 22]])
    assert text == "\n--- Matrix: I ---\n       1,       22\n--- End of Matrix: I ---\n\n"


def test_format_matrix_has_one_line_per_row():
    rows = [[1, 2, 3], [4, 5, 6], [7, 8, 9]]
    lines = format_int_matrix("R", rows).strip("\n").split("\n")
    assert len(lines) == len(rows) + 2
    assert all(line.count(",") == 2 for line in lines[1:-1])


def test_format_double_array_entries():
    text = format_double_array("v", [0.5, 2.0])
    assert "v[0] = 0.500000\n" in text
    assert text.startswith("\n--- Array: v ---\n")
    assert text.endswith("--- End of Array: v ---\n\n")


def test_format_int_array_entries():
    text = format_int_array("n", [7, 8])
    assert "n[0] = 7\n" in text
    assert "n[1] = 8\n" in text
    assert text.count("\n") == 2 + 2 + 2


def test_check_orthogonality_serial_unit_vectors():
    comm = Communicator()
    V = [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]
    text = check_orthogonality(comm, "V", V, 3)
    assert text == format_double_matrix("V", [[1.0, 0.0], [0.0, 1.0]])


def test_check_orthogonality_ignores_ghost_entries():
    comm = Communicator()
    V = [[1.0, 0.0, 5.0], [0.0, 1.0, 5.0]]
    text = check_orthogonality(comm, "V", V, 2)
    assert text == format_double_matrix("V", [[1.0, 0.0], [0.0, 1.0]])


def test_check_orthogonality_empty_returns_none():
    assert check_orthogonality(Communicator(), "V", [], 3) is None


def test_check_orthogonality_parallel():
    global_vectors = [[1.0, 0.0, 0.0, 0.0], [0.0, 0.0, 0.0, 1.0]]

    def body(comm):
        block = block_partition(4, comm.size)[comm.rank]
        local = [[vec[i] for i in block] for vec in global_vectors]
        return check_orthogonality(comm, "W", local, len(block))

    results = run_parallel(2, body)
    assert results[0] == format_double_matrix("W", [[1.0, 0.0], [0.0, 1.0]])
    assert results[1] is None


@pytest.mark.parametrize("ranks", [1, 3])
def test_check_orthogonality_same_on_any_rank_count(ranks):
    global_vectors = [[1.0, 2.0, 0.0, 1.0, 0.0, 3.0], [0.0, 1.0, 1.0, 0.0, 2.0, 0.0]]

    def body(comm):
        block = block_partition(6, comm.size)[comm.rank]
        local = [[vec[i] for i in block] for vec in global_vectors]
        return check_orthogonality(comm, "G", local, len(block))

    serial = check_orthogonality(Communicator(), "G", global_vectors, 6)
    assert run_parallel(ranks, body)[0] == serial