"""Accounting of communication and computation time in the solvers."""

from __future__ import annotations

import math
from dataclasses import dataclass

from pargmres.comm import Communicator, ReduceOp


@dataclass
class CommunicationProfile:
    """Counters and timings gathered on one rank."""

    total_time: float = 0.0
    computation_time: float = 0.0
    communication_time: float = 0.0
    inner_product_count: int = 0
    inner_product_time: float = 0.0
    vector_sync_count: int = 0
    vector_sync_time: float = 0.0
    total_iterations: int = 0


def _ratio(numerator: float, denominator: float) -> float:
    if denominator:
        return numerator / denominator
    if numerator == 0:
        return math.nan
    return math.copysign(math.inf, numerator)


class CommunicationProfiler:
    """Collects a :class:`CommunicationProfile` and reports it across ranks."""

    def __init__(self) -> None:
        self.profile = CommunicationProfile()

    def record_inner_product(self, comm_time: float) -> None:
        self.profile.inner_product_count += 1
        self.profile.inner_product_time += comm_time
        self.profile.communication_time += comm_time

    def record_vector_sync(self, sync_time: float) -> None:
        self.profile.vector_sync_count += 1
        self.profile.vector_sync_time += sync_time
        self.profile.communication_time += sync_time

    def record_iteration(self) -> None:
        self.profile.total_iterations += 1

    def record_computation(self, comp_time: float) -> None:
        self.profile.computation_time += comp_time

    def reset(self) -> None:
        self.profile = CommunicationProfile()

    def report(self, comm: Communicator) -> str | None:
        """Reduce the profile over all ranks; rank 0 gets the report text.

        Every rank must call this, as it performs collective reductions.
        """
        p = self.profile
        comm_time = comm.allreduce(p.communication_time, ReduceOp.SUM) / comm.size
        comp_time = comm.allreduce(p.computation_time, ReduceOp.SUM) / comm.size
        ip_count = comm.allreduce(p.inner_product_count, ReduceOp.MAX)
        sync_count = comm.allreduce(p.vector_sync_count, ReduceOp.MAX)
        iterations = comm.allreduce(p.total_iterations, ReduceOp.MAX)
        if comm.rank != 0:
            return None

        total_time = comm_time + comp_time
        comm_pct = _ratio(comm_time, total_time) * 100
        comp_pct = _ratio(comp_time, total_time) * 100
        rule = "\n============================================================\n"
        out = [
            rule,
            "           Task 3: Initial Communication Profiling\n",
            rule,
            "\n--- OVERALL PERFORMANCE ---\n",
            f"Total Execution Time:     {total_time:.6f} seconds\n",
            f"Total Communication Time: {comm_time:.6f} seconds ({comm_pct:.1f}%)\n",
            f"Total Computation Time:   {comp_time:.6f} seconds ({comp_pct:.1f}%)\n",
            "\n--- INNER PRODUCT ANALYSIS ---\n",
            f"Inner Product Operations: {ip_count}\n",
            f"Inner Product Comm Time:  {p.inner_product_time:.6f} seconds\n",
        ]
        avg_ip = (p.inner_product_time / ip_count) * 1000 if ip_count > 0 else 0.0
        if ip_count > 0:
            out.append(f"Average Inner Product Time: {avg_ip:.3f} ms\n")
        ip_ratio = _ratio(p.inner_product_time, comm_time) * 100
        out.append(f"Inner Product Comm Ratio: {ip_ratio:.1f}% of total comm\n")

        out.append("\n--- VECTOR SYNCHRONIZATION ANALYSIS ---\n")
        out.append(f"Vector Sync Operations:   {sync_count}\n")
        out.append(f"Vector Sync Comm Time:    {p.vector_sync_time:.6f} seconds\n")
        if sync_count > 0:
            avg_sync = (p.vector_sync_time / sync_count) * 1000
            out.append(f"Average Sync Time:        {avg_sync:.3f} ms\n")

        out.append("\n--- ALGORITHM STATISTICS ---\n")
        out.append(f"Total GMRES Iterations:   {iterations}\n")
        if iterations > 0:
            out.append(f"Avg Inner Products/Iter:  {ip_count / iterations:.1f}\n")

        out.append("\n--- PERFORMANCE TABLE ---\n")
        out.append("Processes | Total Time | Comm Time | Comm % | Inner Prod | Avg IP Time\n")
        out.append("----------|------------|-----------|--------|------------|------------\n")
        out.append(
            f"{comm.size:9d} | {total_time:10.6f} | {comm_time:9.6f} | "
            f"{comm_pct:6.1f} | {ip_count:10d} | {avg_ip:8.3f} ms\n"
        )
        out.append(rule)
        return "".join(out)