"""
Tax and Totals Engine (``repair_engines.tax``).

Responsibility
--------------
Resolves per-category tax rates for a shop and summarises a job's priced
lines into parts, labor, fee, tax and grand totals.

Architecture position
---------------------
**Engines layer** -- pure computation, zero I/O.

Invariants enforced
-------------------
* Categories without an explicit rate use the shop's sales tax, except
  labor which defaults to zero.
* Declined job items contribute nothing.
* A tax-exempt job pays no tax.
* Totals are rounded to cents (ROUND_HALF_UP) once, after summing.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from repair_engines.tracer import traced_engine
from repair_kernel.domain.job import EstimateItem, ItemType, Job
from repair_kernel.domain.values import Money, to_decimal

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

TAX_CATEGORIES = (
    "part",
    "labor",
    "sublet",
    "fluid",
    "tires",
    "tow",
    "supplies",
    "rental",
    "fee",
)

_DEFAULT_CATEGORY = {
    ItemType.PART: "part",
    ItemType.LABOR: "labor",
    ItemType.FEES: "fee",
}


@dataclass(frozen=True)
class TaxRates:
    """Tax rates in percent, one per category."""
    sales_tax: Decimal = _ZERO
    part: Decimal = _ZERO
    labor: Decimal = _ZERO
    sublet: Decimal = _ZERO
    fluid: Decimal = _ZERO
    tires: Decimal = _ZERO
    tow: Decimal = _ZERO
    supplies: Decimal = _ZERO
    rental: Decimal = _ZERO
    fee: Decimal = _ZERO

    def __post_init__(self) -> None:
        for name in ("sales_tax",) + TAX_CATEGORIES:
            value = getattr(self, name)
            if value < _ZERO:
                raise ValueError(f"Tax rate {name} cannot be negative: {value}")

    @classmethod
    def from_sales_tax(
        cls,
        sales_tax: Decimal | str | int | None,
        overrides: Mapping[str, Any] | None = None,
    ) -> TaxRates:
        """
        Build rates where every category not overridden uses ``sales_tax``,
        except labor which defaults to zero.
        """
        default = to_decimal(sales_tax)
        overrides = overrides or {}
        unknown = set(overrides) - set(TAX_CATEGORIES)
        if unknown:
            raise ValueError(f"Unknown tax categories: {sorted(unknown)}")

        values: dict[str, Decimal] = {}
        for category in TAX_CATEGORIES:
            fallback = _ZERO if category == "labor" else default
            raw = overrides.get(category)
            values[category] = fallback if raw is None else to_decimal(raw)
        return cls(sales_tax=default, **values)

    def rate_for(self, category: str) -> Decimal:
        if category not in TAX_CATEGORIES:
            raise ValueError(f"Unknown tax category: {category}")
        return getattr(self, category)


def category_for(line: EstimateItem) -> str:
    return line.tax_category or _DEFAULT_CATEGORY[line.item_type]


@dataclass(frozen=True)
class JobTotals:
    parts: Money
    labor: Money
    fees: Money
    subtotal: Money
    tax: Money
    total: Money


@traced_engine("tax", inputs=("currency",))
def compute_job_totals(
    job: Job,
    *,
    rates: TaxRates,
    currency: str = "USD",
) -> JobTotals:
    """Summarise the priced lines of every non-declined job item."""
    sums = {ItemType.PART: _ZERO, ItemType.LABOR: _ZERO, ItemType.FEES: _ZERO}
    tax = _ZERO

    for item in job.job_items:
        if item.is_declined:
            continue
        for line in item.estimate_items:
            sums[line.item_type] += line.line_total
            if not job.tax_exempt:
                tax += line.line_total * rates.rate_for(category_for(line)) / _HUNDRED

    parts = Money(sums[ItemType.PART], currency).round()
    labor = Money(sums[ItemType.LABOR], currency).round()
    fees = Money(sums[ItemType.FEES], currency).round()
    subtotal = parts + labor + fees
    tax_money = Money(tax, currency).round()
    return JobTotals(
        parts=parts,
        labor=labor,
        fees=fees,
        subtotal=subtotal,
        tax=tax_money,
        total=subtotal + tax_money,
    )
