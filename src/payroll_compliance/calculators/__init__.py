"""Pure payroll and consumption tax calculators."""

from payroll_compliance.calculators.consumption_tax import compute_consumption_tax
from payroll_compliance.calculators.payroll import recompute
from payroll_compliance.calculators.rules import RuleBook, parse_rules
from payroll_compliance.calculators.statutory import compute_deductions, estimate_income_tax

__all__ = [
    "compute_consumption_tax",
    "compute_deductions",
    "estimate_income_tax",
    "parse_rules",
    "recompute",
    "RuleBook",
]
