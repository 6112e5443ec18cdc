"""Payroll calculation building blocks."""

from payroll_core.calculators.attendance import AttendanceAggregator
from payroll_core.calculators.canonicalizer import Canonicalizer, canonicalize
from payroll_core.calculators.line_builder import LineItemBuilder
from payroll_core.calculators.statutory import StatutoryEvaluator, WageBaseEvaluator
from payroll_core.calculators.structure import build_structure

__all__ = [
    "AttendanceAggregator",
    "Canonicalizer",
    "canonicalize",
    "LineItemBuilder",
    "StatutoryEvaluator",
    "WageBaseEvaluator",
    "build_structure",
]
