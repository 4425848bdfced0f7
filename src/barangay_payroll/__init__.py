"""Barangay payroll computation and release engine."""

__version__ = "0.1.0"
