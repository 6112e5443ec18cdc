"""Derive a compensation structure from a CTC using catalog calc methods."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal

from payroll_core.calculators.line_builder import LineItemBuilder
from payroll_core.calculators.types import CalcMethod, ResolvedLine
from payroll_core.exceptions import ValidationError
from payroll_core.models import PayComponent

HUNDRED = Decimal("100")


@dataclass
class StructureResult:
    lines: list[ResolvedLine] = field(default_factory=list)
    # Components that need an explicit amount (formula, or unresolvable base).
    needs_amount: list[str] = field(default_factory=list)


def build_structure(ctc_annual: Decimal, catalog: Iterable[PayComponent]) -> StructureResult:
    """Build annual component lines for the active catalog.

    Components are evaluated in ``sort_order``. A ``percent_of_component``
    entry can only reference a component evaluated before it; otherwise it is
    reported in ``needs_amount``.
    """
    if ctc_annual <= 0:
        raise ValidationError("ctc_annual must be positive", field="ctc_annual")

    result = StructureResult()
    derived: dict[str, Decimal] = {}
    active = sorted((c for c in catalog if c.active), key=lambda c: (c.sort_order, c.code))

    for component in active:
        method = CalcMethod(component.calc_method)
        value = Decimal(component.calc_value)
        if method == CalcMethod.FIXED_AMOUNT:
            amount = value
        elif method == CalcMethod.PERCENT_OF_GROSS:
            amount = ctc_annual * value / HUNDRED
        elif method == CalcMethod.PERCENT_OF_COMPONENT:
            base = derived.get(component.calc_base_code or "")
            if base is None:
                result.needs_amount.append(component.code)
                continue
            amount = abs(base) * value / HUNDRED
        else:
            result.needs_amount.append(component.code)
            continue

        amount = LineItemBuilder.round_money(LineItemBuilder.signed(component.type, amount))
        derived[component.code] = amount
        result.lines.append(ResolvedLine(code=component.code, amount=amount))

    return result
