"""Node labels, MIG helpers and allocation responses derived from GPU device descriptions."""

__version__ = "0.16.0"