"""Statutory rule evaluator seam.

Tax and contribution formulas (PF/ESIC/PT/TDS) are supplied by a pluggable
evaluator. The engine only depends on the ``StatutoryEvaluator`` protocol and
calls it under a timeout; any failure is a per-employee failure.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Protocol, runtime_checkable

from payroll_core.calculators.line_builder import LineItemBuilder
from payroll_core.calculators.types import (
    EmployeeContext,
    GrossComponent,
    PeriodWindow,
    StatutoryResult,
)
from payroll_core.exceptions import EvaluatorError, EvaluatorTimeout

logger = logging.getLogger(__name__)

WAGE_BASE_KEYS = ("pf_wages", "esic_wages", "pt_amount", "tds_amount")


@runtime_checkable
class StatutoryEvaluator(Protocol):
    """Produces statutory deduction/employer-cost lines and wage bases."""

    async def evaluate(
        self,
        gross_components: list[GrossComponent],
        employee: EmployeeContext,
        period: PeriodWindow,
    ) -> StatutoryResult:
        ...


class WageBaseEvaluator:
    """Default evaluator: wage bases only, no statutory lines.

    PF and ESIC wages are the sums of the prorated earnings whose components
    participate in each scheme, zeroed when the org is not registered for it.
    """

    async def evaluate(
        self,
        gross_components: list[GrossComponent],
        employee: EmployeeContext,
        period: PeriodWindow,
    ) -> StatutoryResult:
        pf_wages = sum(
            (c.amount for c in gross_components if c.pf_wage_participates), Decimal("0")
        )
        esic_wages = sum(
            (c.amount for c in gross_components if c.esic_wage_participates), Decimal("0")
        )
        profile = employee.profile
        return StatutoryResult(
            wage_bases={
                "pf_wages": LineItemBuilder.round_money(pf_wages) if profile.pf_enabled else Decimal("0"),
                "esic_wages": LineItemBuilder.round_money(esic_wages) if profile.esic_enabled else Decimal("0"),
                "pt_amount": Decimal("0"),
                "tds_amount": Decimal("0"),
            }
        )


async def evaluate_with_timeout(
    evaluator: StatutoryEvaluator,
    gross_components: list[GrossComponent],
    employee: EmployeeContext,
    period: PeriodWindow,
    timeout_seconds: float,
) -> StatutoryResult:
    """Call the evaluator once; no retries.

    Raises EvaluatorTimeout or EvaluatorError.
    """
    try:
        return await asyncio.wait_for(
            evaluator.evaluate(gross_components, employee, period),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError:
        raise EvaluatorTimeout(employee.employee_id, timeout_seconds) from None
    except EvaluatorError:
        raise
    except Exception as e:
        logger.warning(
            "statutory evaluator failed employee_id=%s error=%s", employee.employee_id, e
        )
        raise EvaluatorError(
            employee.employee_id, f"Statutory evaluator failed: {e}"
        ) from e
