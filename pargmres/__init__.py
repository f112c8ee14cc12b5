"""Restarted GMRES and s-step CA-GMRES for sparse linear systems split across cooperating ranks."""

__version__ = "0.1.0"