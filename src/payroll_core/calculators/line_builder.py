"""Snapshot line builder: signs, proration and money rounding."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from payroll_core.calculators.types import ComponentType, RunTotals, SnapshotLine

MONTHS_PER_YEAR = Decimal("12")


class LineItemBuilder:
    """Builds snapshot lines with the sign conventions enforced.

    Sign conventions (non-negotiable):
    - EARNING: positive
    - DEDUCTION: negative
    - EMPLOYER_COST: positive (cost to the org, not part of net)

    Rounding:
    - Money is persisted at 2 decimals, ROUND_HALF_UP
    - Proration runs at full Decimal precision and is rounded once per line
    - Totals are sums of already rounded lines, so net = gross - deductions
      holds exactly
    """

    OUTPUT_PRECISION = Decimal("0.01")

    @staticmethod
    def round_money(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places."""
        return amount.quantize(LineItemBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def signed(component_type: ComponentType | str, amount: Decimal) -> Decimal:
        """Force the conventional sign for a component type.

        Deductions become negative, everything else non-negative. The sign of
        the input is ignored.
        """
        magnitude = abs(amount)
        if magnitude == 0:
            return Decimal("0")
        if ComponentType(component_type) == ComponentType.DEDUCTION:
            return -magnitude
        return magnitude

    @staticmethod
    def monthly_amount(annual_amount: Decimal) -> Decimal:
        return annual_amount / MONTHS_PER_YEAR

    @staticmethod
    def prorate(amount: Decimal, factor: Decimal) -> Decimal:
        return amount * factor

    @staticmethod
    def create_line(
        code: str,
        name: str,
        component_type: ComponentType | str,
        amount: Decimal,
    ) -> SnapshotLine:
        component_type = ComponentType(component_type)
        return SnapshotLine(
            code=code,
            name=name,
            type=component_type,
            amount=LineItemBuilder.round_money(LineItemBuilder.signed(component_type, amount)),
        )

    @staticmethod
    def create_earning_line(code: str, name: str, amount: Decimal) -> SnapshotLine:
        """Create an earning line (positive amount)."""
        return LineItemBuilder.create_line(code, name, ComponentType.EARNING, amount)

    @staticmethod
    def create_deduction_line(code: str, name: str, amount: Decimal) -> SnapshotLine:
        """Create a deduction line (negative amount)."""
        return LineItemBuilder.create_line(code, name, ComponentType.DEDUCTION, amount)

    @staticmethod
    def create_employer_cost_line(code: str, name: str, amount: Decimal) -> SnapshotLine:
        """Create an employer cost line (positive amount)."""
        return LineItemBuilder.create_line(code, name, ComponentType.EMPLOYER_COST, amount)

    @staticmethod
    def calculate_totals(lines: list[SnapshotLine]) -> RunTotals:
        """Sum lines into run totals.

        GROSS = Σ(EARNING)
        DEDUCTIONS = Σ|DEDUCTION|
        NET = GROSS - DEDUCTIONS
        EMPLOYER_COST = GROSS + Σ(EMPLOYER_COST)
        """
        gross = Decimal("0")
        deductions = Decimal("0")
        employer = Decimal("0")
        for line in lines:
            if line.type == ComponentType.EARNING:
                gross += line.amount
            elif line.type == ComponentType.DEDUCTION:
                deductions += abs(line.amount)
            else:
                employer += line.amount

        gross = LineItemBuilder.round_money(gross)
        deductions = LineItemBuilder.round_money(deductions)
        return RunTotals(
            gross_earnings=gross,
            total_deductions=deductions,
            net_pay=gross - deductions,
            employer_cost=LineItemBuilder.round_money(gross + employer),
        )

    @staticmethod
    def validate_line_signs(lines: list[SnapshotLine]) -> list[str]:
        """Validate that all lines have correct signs.

        Returns list of error messages (empty if all valid).
        """
        errors: list[str] = []

        for i, line in enumerate(lines):
            if line.type == ComponentType.DEDUCTION:
                if line.amount > 0:
                    errors.append(
                        f"Line {i} ({line.code}) has positive amount {line.amount}, expected negative"
                    )
            elif line.amount < 0:
                errors.append(
                    f"Line {i} ({line.code}) has negative amount {line.amount}, expected positive"
                )

        return errors
