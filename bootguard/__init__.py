"""Bootguard: self-healing bootstrap for a containerized metadata service.

Two halves share one run:
- script integrity: validate, restore and repair operator scripts
- configuration lifecycle: bootstrap or reconcile the service metadata
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
