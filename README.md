# pargmres

Restarted GMRES solvers for sparse linear systems whose rows are split in
contiguous blocks across a group of cooperating ranks. Two algorithms are
provided:

- **Classical GMRES** (`pargmres.gmres.gmres_solve`): the Arnoldi process
  projects each new vector onto the basis one vector at a time, with one
  global reduction per inner product.
- **CA-GMRES** (`pargmres.ca_gmres.ca_gmres_solve`): an s-step variant
  that gathers all projections of a new Arnoldi vector in a single
  reduction.

Both restart after a fixed number of iterations, stop when the true
residual `||b - A x||` falls below a tolerance, and can apply a Jacobi
(inverse diagonal) left preconditioner. A profiler counts inner-product
reductions and ghost-value exchanges and the time spent in them.

## Installation

```
pip install .
```

No packages beyond the standard library are needed.

## Input files

- **Matrix file**: a header `rows cols nnz` followed by `nnz` triples
  `row col value` with 1-based indices (the coordinate body of a Matrix
  Market file). Lines starting with `%` are skipped. Rows are split so
  that the first `rows % ranks` ranks get one row more than the others.
- **Right-hand side file**: `rows` whitespace-separated numbers.

A missing file, a malformed header or entry, or too few values raises
`pargmres.reader.MatrixReadError`.

## Command line

```
pargmres [-n RANKS] <matrix_file> <rhs_file> <iterations> <preconditioner_flag> <restarts> [s_step] [tolerance]
```

- `-n`, `--np` – number of ranks (default 1).
- `iterations` – Krylov subspace size per restart.
- `preconditioner_flag` – non-zero to apply the Jacobi preconditioner.
- `restarts` – maximum number of restarts.
- `s_step` – block size; a value above 1 selects CA-GMRES (default 1).
- `tolerance` – tolerance on the estimated residual that ends a restart
  cycle early (default `1e-10`); the true-residual tolerance is fixed at
  `1e-9`.

The command prints the chosen algorithm, a communication performance
report and whether the solver converged. Progress of each restart is
written through `logging` at INFO level. Bad arguments print a usage
message; bad arguments and unreadable input both give exit status 1.

## Library use

```python
from pargmres.comm import run_parallel
from pargmres.cli import Options, run_rank

options = Options(
    matrix_file="matrix.mtx",
    rhs_file="rhs.txt",
    gmres_iterations=30,
    preconditioner=True,
    max_restarts=10,
    s_param=4,
)
results = run_parallel(4, run_rank, options)
full_solution = results[0].x  # rank 0 holds the gathered solution
```

`run_rank` returns a `SolveResult` with `x`, `converged`,
`total_iterations` and `true_residual`.

The building blocks live in separate modules:

- `pargmres.comm` – `Communicator` (allreduce, send/recv, barrier,
  gather, scatter), `ReduceOp`, `block_partition`, `run_parallel`
- `pargmres.reader` – `read_sparse_matrix`, `read_rhs_vector`,
  `LocalMatrix`, `find_max`, `MatrixReadError`
- `pargmres.localization` – `setup_communication`, `synchronize_vector`,
  `format_communication_plan`, `CommunicationPlan`
- `pargmres.sparse_blas` – `LocalSystem`, `SolveResult`, `sparse_matvec`,
  `batch_matvec`, `parallel_dot`, `parallel_norm`, `s_step_arnoldi`,
  `modified_gram_schmidt`, `scale_vector`, `add_scaled_vector`
- `pargmres.ca_gmres` – `ca_gmres_solve`, `ca_s_step_arnoldi`,
  `batch_inner_products`
- `pargmres.gmres` – `gmres_solve`, `jacobi_preconditioner`
- `pargmres.profiler` – `CommunicationProfiler`, `CommunicationProfile`
- `pargmres.utility` – text formatting of matrices and arrays,
  `command_syntax` and `check_orthogonality`

## Limitations

- All ranks run as threads inside one Python process and exchange data
  through in-memory queues. The package does not spread work over
  separate processes or machines, so more ranks do not make a solve
  faster.
- The solution is not written to a file; the command only reports
  whether and after how many iterations the solver converged.

## Tests

```
pip install .[test]
pytest
```