[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pargmres"
version = "0.1.0"
description = "Restarted GMRES and s-step CA-GMRES for sparse linear systems split by row blocks across cooperating ranks"
requires-python = ">=3.10"
dependencies = []
keywords = ["gmres", "ca-gmres", "krylov", "sparse", "linear-solver", "arnoldi", "matrix-market"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Mathematics",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
pargmres = "pargmres.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["pargmres"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
