"""Component code canonicalization.

Free-text and AI-drafted compensation structures name components loosely
("basic", "Basic Salary", "pf"). Before anything downstream sees them, each
line is mapped onto an authoritative catalog code, its sign is forced to the
component type's convention, and duplicate codes are summed.

Resolution priority for a raw code:
1. exact catalog code
2. case-insensitive catalog code
3. alias from ``COMPONENT_ALIASES`` whose target exists in the catalog

Lines that resolve nowhere are returned in ``unmapped`` and never included in
``resolved``; callers must surface them to a human.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

from payroll_core.calculators.line_builder import LineItemBuilder
from payroll_core.calculators.types import CanonicalizationResult, ResolvedLine, UnmappedLine
from payroll_core.exceptions import ValidationError


class CatalogEntry(Protocol):
    code: str
    type: str


# Ordered (alias, target) pairs. When an alias appears more than once the
# first pair whose target exists in the catalog wins.
COMPONENT_ALIASES: tuple[tuple[str, str], ...] = (
    ("basic", "BASIC"),
    ("basic salary", "BASIC"),
    ("basic pay", "BASIC"),
    ("hra", "HRA"),
    ("house rent allowance", "HRA"),
    ("conveyance", "CONV"),
    ("conveyance allowance", "CONV"),
    ("conv", "CONV"),
    ("da", "DA"),
    ("dearness allowance", "DA"),
    ("special", "SPECIAL"),
    ("special allowance", "SPECIAL"),
    ("spec", "SPECIAL"),
    ("medical", "MED"),
    ("medical allowance", "MED"),
    ("lta", "LTA"),
    ("leave travel allowance", "LTA"),
    ("bonus", "BONUS"),
    ("pf", "PF"),
    ("pf", "PF_EE"),
    ("epf", "PF"),
    ("epf", "PF_EE"),
    ("provident fund", "PF"),
    ("provident fund", "PF_EE"),
    ("employer pf", "PF_ER"),
    ("esi", "ESIC"),
    ("esi", "ESIC_EE"),
    ("esic", "ESIC_EE"),
    ("employer esic", "ESIC_ER"),
    ("pt", "PT"),
    ("professional tax", "PT"),
    ("tds", "TDS"),
    ("income tax", "TDS"),
    ("gratuity", "GRATUITY"),
)

_SEPARATORS = re.compile(r"[\s_\-]+")


def normalize_alias(raw: str) -> str:
    return _SEPARATORS.sub(" ", raw.strip()).casefold()


def parse_amount(value: Any, field: str = "amount") -> Decimal:
    """Parse a money amount, rejecting anything that is not a finite number."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number, got {value!r}", field=field)
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field} must be a number, got {value!r}", field=field) from None
    if not amount.is_finite():
        raise ValidationError(f"{field} must be finite, got {value!r}", field=field)
    return amount


def _raw_fields(line: Any) -> tuple[str, Any]:
    if isinstance(line, Mapping):
        code = line.get("code")
        if code is None:
            code = line.get("component_code")
        return str(code or ""), line.get("amount")
    if isinstance(line, tuple) and len(line) == 2:
        code, amount = line
        return str(code or ""), amount
    return str(getattr(line, "code", "") or ""), getattr(line, "amount", None)


class Canonicalizer:
    """Maps raw component lines onto one org's catalog."""

    def __init__(
        self,
        catalog: Iterable[CatalogEntry],
        aliases: tuple[tuple[str, str], ...] = COMPONENT_ALIASES,
    ):
        self._types: dict[str, str] = {}
        self._by_casefold: dict[str, str] = {}
        for entry in catalog:
            self._types.setdefault(entry.code, str(getattr(entry.type, "value", entry.type)))
            self._by_casefold.setdefault(entry.code.casefold(), entry.code)

        self._aliases: dict[str, str] = {}
        for alias, target in aliases:
            key = normalize_alias(alias)
            if target in self._types and key not in self._aliases:
                self._aliases[key] = target

    def resolve_code(self, raw_code: str) -> str | None:
        """Return the catalog code for a raw code, or None."""
        if raw_code in self._types:
            return raw_code
        folded = raw_code.strip().casefold()
        if folded in self._by_casefold:
            return self._by_casefold[folded]
        return self._aliases.get(normalize_alias(raw_code))

    def component_type(self, code: str) -> str:
        return self._types[code]

    def canonicalize(self, raw_lines: Iterable[Any]) -> CanonicalizationResult:
        """Resolve, sign-correct and collapse raw component lines.

        Output order follows the first appearance of each resolved code.
        """
        totals: dict[str, Decimal] = {}
        unmapped: list[UnmappedLine] = []

        for line in raw_lines:
            raw_code, raw_amount = _raw_fields(line)
            amount = parse_amount(raw_amount)
            code = self.resolve_code(raw_code) if raw_code else None
            if code is None:
                unmapped.append(UnmappedLine(raw_code=raw_code, amount=amount))
                continue
            signed = LineItemBuilder.signed(self._types[code], amount)
            totals[code] = totals.get(code, Decimal("0")) + signed

        resolved = [ResolvedLine(code=code, amount=amount) for code, amount in totals.items()]
        return CanonicalizationResult(resolved=resolved, unmapped=unmapped)


def canonicalize(
    raw_lines: Iterable[Any],
    catalog: Iterable[CatalogEntry],
) -> CanonicalizationResult:
    """Convenience wrapper: ``Canonicalizer(catalog).canonicalize(raw_lines)``."""
    return Canonicalizer(catalog).canonicalize(raw_lines)
