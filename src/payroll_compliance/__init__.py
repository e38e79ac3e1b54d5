"""Gross-to-net payroll, statutory levies and compliance reporting."""

__version__ = "1.0.0"
