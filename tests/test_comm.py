import threading

import pytest

from pargmres.comm import Communicator, ReduceOp, block_partition, run_parallel


def test_block_partition_source_layout():
    parts = block_partition(10, 3)
    assert [len(p) for p in parts] == [4, 3, 3]
    assert parts[0].start == 0
    assert parts[-1].stop == 10


@pytest.mark.parametrize("rows,procs", [(0, 2), (1, 4), (7, 7), (17, 5), (100, 8)])
def test_block_partition_invariants(rows, procs):
    parts = block_partition(rows, procs)
    assert len(parts) == procs
    assert parts[0].start == 0
    assert parts[-1].stop == rows
    for left, right in zip(parts, parts[1:]):
        assert left.stop == right.start
        assert len(left) >= len(right)
    sizes = [len(p) for p in parts]
    assert max(sizes) - min(sizes) <= 1


def test_block_partition_rejects_zero_procs():
    with pytest.raises(ValueError):
        block_partition(5, 0)


def test_allreduce_scalar_sum():
    results = run_parallel(4, lambda c: c.allreduce(c.rank + 1))
    assert results == [10, 10, 10, 10]


def test_allreduce_vector_max_and_min():
    maxes = run_parallel(3, lambda c: c.allreduce([c.rank, -c.rank], ReduceOp.MAX))
    mins = run_parallel(3, lambda c: c.allreduce([c.rank, -c.rank], ReduceOp.MIN))
    assert maxes == [[2, 0]] * 3
    assert all(m == [0, -2] for m in mins)


def test_single_rank_communicator():
    comm = Communicator()
    assert comm.size == 1
    assert comm.rank == 0
    assert comm.allreduce(5.5) == 5.5
    assert comm.gather([1, 2]) == [1, 2]


def test_send_recv_ring():
    def ring(comm):
        comm.send((comm.rank + 1) % comm.size, 7, [comm.rank])
        return comm.recv((comm.rank - 1) % comm.size, 7)

    results = run_parallel(4, ring)
    for rank, got in enumerate(results):
        assert got == [(rank - 1) % 4]


def test_send_copies_list_payload():
    def exchange(comm):
        if comm.rank == 0:
            data = [1.0, 2.0]
            comm.send(1, 0, data)
            data[0] = 99.0
            comm.barrier()
            return None
        comm.barrier()
        return comm.recv(0, 0)

    assert run_parallel(2, exchange)[1] == [1.0, 2.0]


def test_messages_are_separated_by_tag():
    def exchange(comm):
        if comm.rank == 0:
            comm.send(1, 0, "count")
            comm.send(1, 1, "list")
            return None
        return comm.recv(0, 1), comm.recv(0, 0)

    assert run_parallel(2, exchange)[1] == ("list", "count")


def test_gather_concatenates_in_rank_order():
    results = run_parallel(3, lambda c: c.gather([c.rank, c.rank]))
    assert results[0] == [r for r in range(3) for _ in range(2)]
    assert results[1] is None and results[2] is None


def test_scatter_hands_out_chunks():
    chunks = [[1.0], [2.0, 3.0], []]

    def scatter(comm):
        return comm.scatter(chunks if comm.rank == 0 else None, 0)

    assert run_parallel(3, scatter) == chunks


def test_scatter_wrong_chunk_count_raises():
    def scatter(comm):
        return comm.scatter([[1]] if comm.rank == 0 else None, 0)

    with pytest.raises(ValueError):
        run_parallel(2, scatter)


def test_barrier_orders_phases():
    log = []
    lock = threading.Lock()

    def phases(comm):
        with lock:
            log.append(("a", comm.rank))
        comm.barrier()
        with lock:
            seen_before = sum(1 for phase, _ in log if phase == "a")
            log.append(("b", comm.rank))
        return seen_before

    results = run_parallel(4, phases)
    assert results == [4, 4, 4, 4]
    phases_seen = [phase for phase, _ in log]
    assert phases_seen == ["a"] * 4 + ["b"] * 4


def test_failure_in_one_rank_propagates():
    def failing(comm):
        if comm.rank == 1:
            raise ValueError("boom")
        comm.recv(1, 3)

    with pytest.raises(ValueError, match="boom"):
        run_parallel(3, failing)


def test_run_parallel_rejects_empty_size():
    with pytest.raises(ValueError):
        run_parallel(0, lambda c: None)


def test_wtime_is_monotonic():
    comm = Communicator()
    first = comm.wtime()
    second = comm.wtime()
    assert second >= first