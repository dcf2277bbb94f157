"""
Pricing Engine (``repair_engines.pricing``).

Responsibility
--------------
Computes unit prices and line totals for the estimate lines of one job
item: parts, labor and fees. Handles package bundling, where a fixed
package price is split across the bundled parts after labor is taken out.

Price derivation is an ordered list of ``PriceSource`` strategies per line
kind. The first source returning a value wins:

    parts   ExplicitUnitPrice -> MarkupOfCost -> InventoryListPrice
    labor   AggregateLaborShare -> ExplicitUnitPrice -> LaborRateLookup

Bundled parts in a package skip their sources and take a share of the
package remainder (``PackageAllocation``).

Architecture position
---------------------
**Engines layer** -- pure computation, zero I/O. Rates come through the
``RateProvider`` collaborator and inventory data through a prefetched
mapping on the ``PricingContext``.

Invariants enforced
-------------------
* Decimal-only arithmetic; results rounded to cents with ROUND_HALF_UP.
* Package allocation conserves the remainder: allocated shares sum exactly
  to ``package_price - labor_total`` (the last line absorbs the residual).
* Deterministic: identical inputs produce identical prices.
* Never raises for a bad line. A line no source can price gets price 0,
  ``needs_review=True`` and a ``PRICING_AMBIGUOUS`` reason.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from repair_engines.tracer import traced_engine
from repair_kernel.domain.job import (
    EstimateItem,
    InventoryRecord,
    ItemType,
    JobItem,
)
from repair_kernel.domain.values import Money, round_half_up
from repair_kernel.exceptions import PricingAmbiguousError
from repair_kernel.logging_config import get_logger

logger = get_logger("engines.pricing")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


class RateProvider(Protocol):
    """Shop rate collaborator."""

    def labor_rate(self, shop_id: str, vehicle_id: str | None) -> Money | None:
        """Hourly labor price charged to the customer, if the shop has one."""
        ...

    def markup(self, shop_id: str, cost: Money) -> Money | None:
        """Unit price for a part that costs ``cost``, if the shop marks up parts."""
        ...


@dataclass(frozen=True)
class PricingContext:
    """Everything the engine needs besides the job item itself."""
    shop_id: str
    rates: RateProvider
    currency: str = "USD"
    vehicle_id: str | None = None
    technician_hourly_rate: Decimal | None = None
    default_hourly_rate: Decimal = _ZERO
    inventory: Mapping[str, InventoryRecord] = field(default_factory=dict)

    def money(self, amount: Decimal) -> Money:
        return Money(amount, self.currency)

    def record_for(self, line: EstimateItem) -> InventoryRecord | None:
        if not line.part_number:
            return None
        return self.inventory.get(line.part_number)

    @property
    def labor_cost(self) -> Decimal:
        """Per-hour labor cost: technician rate, else the shop default."""
        if self.technician_hourly_rate is not None:
            return self.technician_hourly_rate
        return self.default_hourly_rate


@dataclass(frozen=True)
class PricedLine:
    """Pricing result for one estimate line."""
    estimate_item_id: UUID
    item_type: ItemType
    quantity: Decimal
    unit_price: Money
    line_total: Money
    cost: Decimal | None = None
    source: str = ""
    allocated: Money | None = None
    base_item_id: UUID | None = None
    needs_review: bool = False
    review_reason: str | None = None


@dataclass(frozen=True)
class PricingResult:
    """All priced lines of one job item plus package figures."""
    job_item_id: UUID
    lines: tuple[PricedLine, ...]
    labor_total: Money
    parts_total: Money | None = None
    package_add_on: Money | None = None

    @property
    def total(self) -> Money:
        total = Money.zero(self.labor_total.currency)
        for line in self.lines:
            total = total + line.line_total
        return total

    @property
    def review_flags(self) -> tuple[PricedLine, ...]:
        return tuple(line for line in self.lines if line.needs_review)

    def line_for(self, estimate_item_id: UUID) -> PricedLine | None:
        for line in self.lines:
            if line.estimate_item_id == estimate_item_id:
                return line
        return None


# -----------------------------------------------------------------------------
# Price sources
# -----------------------------------------------------------------------------


class PriceSource(Protocol):
    name: str

    def price(self, line: EstimateItem, ctx: PricingContext) -> Money | None:
        ...


class ExplicitUnitPrice:
    """The unit price entered on the line."""
    name = "explicit_unit_price"

    def price(self, line: EstimateItem, ctx: PricingContext) -> Money | None:
        if line.price_per_unit is None:
            return None
        return ctx.money(line.price_per_unit)


class MarkupOfCost:
    """Shop markup applied to a non-zero part cost."""
    name = "markup_of_cost"

    def price(self, line: EstimateItem, ctx: PricingContext) -> Money | None:
        cost = part_cost(line, ctx)
        if cost is None or cost == _ZERO:
            return None
        return ctx.rates.markup(ctx.shop_id, ctx.money(cost))


class InventoryListPrice:
    """List price of the inventory record for the line's part number."""
    name = "inventory_list_price"

    def price(self, line: EstimateItem, ctx: PricingContext) -> Money | None:
        record = ctx.record_for(line)
        if record is None or record.part_price is None:
            return None
        return ctx.money(record.part_price)


class AggregateLaborShare:
    """Even share of the job item's aggregate labor price per labor hour."""
    name = "aggregate_labor_share"

    def __init__(self, labor_price: Decimal | None, labor_divisor: Decimal):
        self.labor_price = labor_price
        self.labor_divisor = labor_divisor

    def price(self, line: EstimateItem, ctx: PricingContext) -> Money | None:
        if self.labor_price is None:
            return None
        if self.labor_divisor == _ZERO:
            return ctx.money(self.labor_price)
        return ctx.money(self.labor_price / self.labor_divisor)


class LaborRateLookup:
    """The shop's labor rate for the vehicle."""
    name = "labor_rate_lookup"

    def price(self, line: EstimateItem, ctx: PricingContext) -> Money | None:
        return ctx.rates.labor_rate(ctx.shop_id, ctx.vehicle_id)


PART_SOURCES: tuple[PriceSource, ...] = (
    ExplicitUnitPrice(),
    MarkupOfCost(),
    InventoryListPrice(),
)


def labor_sources(job_item: JobItem) -> tuple[PriceSource, ...]:
    return (
        AggregateLaborShare(job_item.labor_price, labor_divisor(job_item.labor_lines)),
        ExplicitUnitPrice(),
        LaborRateLookup(),
    )


def first_price(
    sources: Sequence[PriceSource],
    line: EstimateItem,
    ctx: PricingContext,
) -> tuple[Money, str]:
    """
    Try each source in order and return the first price with its source name.

    Raises:
        PricingAmbiguousError: no source could price the line.
    """
    for source in sources:
        price = source.price(line, ctx)
        if price is not None:
            return price, source.name
    raise PricingAmbiguousError(
        line.description, line.item_type.value, "no price source matched",
    )


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def part_cost(line: EstimateItem, ctx: PricingContext) -> Decimal | None:
    """Line cost, falling back to the inventory record's cost."""
    if line.cost is not None:
        return line.cost
    record = ctx.record_for(line)
    return record.cost if record is not None else None


def labor_quantity(line: EstimateItem) -> Decimal:
    if line.quantity:
        return line.quantity
    return line.labor_time or _ZERO


def labor_divisor(labor_lines: Sequence[EstimateItem]) -> Decimal:
    return sum((labor_quantity(line) for line in labor_lines), _ZERO)


def package_labor_total(job_item: JobItem, ctx: PricingContext) -> Money:
    """``labor_price`` when set, else the labor hours at the shop labor rate."""
    if job_item.labor_price is not None:
        return ctx.money(job_item.labor_price)
    total = ctx.money(_ZERO)
    for line in job_item.labor_lines:
        rate = ctx.rates.labor_rate(ctx.shop_id, ctx.vehicle_id)
        if rate is not None:
            total = total + rate * labor_quantity(line)
    return total


def resolve_base_item(
    description: str | None,
    item_type: ItemType,
    quantity: Decimal,
    lines: Sequence[EstimateItem],
) -> UUID | None:
    """Id of the first non-fee line matching description, type and quantity."""
    for line in lines:
        if line.is_fee:
            continue
        if (
            line.description == description
            and line.item_type is item_type
            and line.quantity == quantity
        ):
            return line.id
    return None


def allocate_package(
    parts_total: Money,
    lines: Sequence[EstimateItem],
    ctx: PricingContext,
) -> list[Money]:
    """
    Split ``parts_total`` across bundled part lines.

    Weights are each line's ``cost * quantity``. When every weight is zero
    the split is by quantity; when every quantity is zero the last line
    takes the whole amount. Shares are rounded to cents and the last line
    absorbs the residual, so the shares sum exactly to ``parts_total``.
    """
    if not lines:
        return []

    amount = parts_total.round().amount
    weights = [(part_cost(line, ctx) or _ZERO) * line.quantity for line in lines]
    total_weight = sum(weights, _ZERO)
    if total_weight == _ZERO:
        weights = [line.quantity for line in lines]
        total_weight = sum(weights, _ZERO)

    shares: list[Money] = []
    allocated_so_far = _ZERO
    last = len(lines) - 1
    for i, weight in enumerate(weights):
        if i == last:
            share = amount - allocated_so_far
        elif total_weight == _ZERO:
            share = _ZERO
        else:
            share = round_half_up(amount * weight / total_weight)
            allocated_so_far += share
        shares.append(ctx.money(share))
    return shares


def _unit_from_total(total: Money, quantity: Decimal) -> Money:
    if quantity == _ZERO:
        return total
    return (total / quantity).round()


def _ambiguous(line: EstimateItem, ctx: PricingContext, exc: PricingAmbiguousError) -> PricedLine:
    logger.warning(
        "pricing_ambiguous",
        extra={
            "estimate_item_id": str(line.id),
            "item_type": line.item_type.value,
            "reason": exc.reason,
        },
    )
    zero = ctx.money(_ZERO)
    return PricedLine(
        estimate_item_id=line.id,
        item_type=line.item_type,
        quantity=line.quantity,
        unit_price=zero,
        line_total=zero,
        cost=line.cost,
        source="",
        base_item_id=line.base_item_id,
        needs_review=True,
        review_reason=f"{exc.code}: {exc.reason}",
    )


def _price_by_sources(
    line: EstimateItem,
    sources: Sequence[PriceSource],
    ctx: PricingContext,
    quantity: Decimal,
    cost: Decimal | None,
) -> PricedLine:
    try:
        unit, source = first_price(sources, line, ctx)
    except PricingAmbiguousError as exc:
        return _ambiguous(line, ctx, exc)
    unit = unit.clamp_non_negative().round()
    return PricedLine(
        estimate_item_id=line.id,
        item_type=line.item_type,
        quantity=quantity,
        unit_price=unit,
        line_total=(unit * quantity).round(),
        cost=cost,
        source=source,
    )


def _distribute_labor_residual(
    priced: list[PricedLine], labor_price: Decimal, ctx: PricingContext,
) -> list[PricedLine]:
    """Make aggregate-share labor lines sum exactly to ``labor_price``."""
    shared = [i for i, p in enumerate(priced) if p.source == AggregateLaborShare.name]
    if not shared:
        return priced
    amount = round_half_up(labor_price)
    carriers = [i for i in shared if priced[i].quantity != _ZERO]
    if not carriers:
        # No hours: split the price evenly, residual on the last line.
        share = round_half_up(amount / len(shared))
        for n, i in enumerate(shared):
            portion = share if n < len(shared) - 1 else amount - share * (len(shared) - 1)
            priced[i] = replace(
                priced[i], unit_price=ctx.money(portion), line_total=ctx.money(portion),
            )
        return priced
    total = sum((priced[i].line_total.amount for i in shared), _ZERO)
    residual = amount - total
    if residual == _ZERO:
        return priced
    last = carriers[-1]
    priced[last] = replace(priced[last], line_total=priced[last].line_total + ctx.money(residual))
    return priced


def _price_fee(
    line: EstimateItem,
    ctx: PricingContext,
    priced_by_id: Mapping[UUID, PricedLine],
    subtotal: Money,
) -> PricedLine:
    quantity = line.quantity or Decimal("1")
    if line.fee_amount is not None:
        unit = ctx.money(line.fee_amount).round()
        return PricedLine(
            estimate_item_id=line.id,
            item_type=line.item_type,
            quantity=quantity,
            unit_price=unit,
            line_total=(unit * quantity).round(),
            cost=line.cost,
            source="fee_amount",
            base_item_id=line.base_item_id,
        )
    if line.fee_percentage is not None:
        base = subtotal
        if line.base_item_id is not None and line.base_item_id in priced_by_id:
            base = priced_by_id[line.base_item_id].line_total
        total = (base * (line.fee_percentage / _HUNDRED)).round()
        return PricedLine(
            estimate_item_id=line.id,
            item_type=line.item_type,
            quantity=quantity,
            unit_price=_unit_from_total(total, quantity),
            line_total=total,
            cost=line.cost,
            source="fee_percentage",
            base_item_id=line.base_item_id,
        )
    return _ambiguous(
        line, ctx,
        PricingAmbiguousError(line.description, line.item_type.value, "fee has no amount"),
    )


# -----------------------------------------------------------------------------
# Engine entry point
# -----------------------------------------------------------------------------


@traced_engine("pricing")
def price_job_item(job_item: JobItem, *, ctx: PricingContext) -> PricingResult:
    """
    Price every estimate line of ``job_item``.

    Lines are returned in the order they appear on the job item. The job
    item is not modified; the caller writes the results back.
    """
    priced: dict[UUID, PricedLine] = {}
    is_package = job_item.package_price is not None

    # Labor
    labor_lines = job_item.labor_lines
    labor_priced = [
        _price_by_sources(
            line, labor_sources(job_item), ctx, labor_quantity(line), ctx.labor_cost,
        )
        for line in labor_lines
    ]
    if job_item.labor_price is not None:
        labor_priced = _distribute_labor_residual(labor_priced, job_item.labor_price, ctx)
    for p in labor_priced:
        priced[p.estimate_item_id] = p

    # Parts
    parts_total: Money | None = None
    package_add_on: Money | None = None
    labor_total = package_labor_total(job_item, ctx) if is_package else sum(
        (p.line_total for p in labor_priced), ctx.money(_ZERO),
    )

    if is_package:
        parts_total = (ctx.money(job_item.package_price) - labor_total).clamp_non_negative()
        bundled = [line for line in job_item.part_lines if not line.additional]
        shares = allocate_package(parts_total, bundled, ctx)
        for line, share in zip(bundled, shares):
            record = ctx.record_for(line)
            package_add = record.package_add if record is not None else line.package_add
            add_on = ctx.money((package_add or _ZERO) * line.quantity).round()
            total = share + add_on
            priced[line.id] = PricedLine(
                estimate_item_id=line.id,
                item_type=line.item_type,
                quantity=line.quantity,
                unit_price=_unit_from_total(total, line.quantity),
                line_total=total,
                cost=part_cost(line, ctx),
                source="package_allocation",
                allocated=share,
            )
        package_add_on = ctx.money(_ZERO)

    for line in job_item.part_lines:
        if line.id in priced:
            continue
        p = _price_by_sources(line, PART_SOURCES, ctx, line.quantity, part_cost(line, ctx))
        priced[line.id] = p
        if is_package and line.additional:
            package_add_on = package_add_on + p.line_total

    # Fees last: percentages need the other lines.
    subtotal = sum((p.line_total for p in priced.values()), ctx.money(_ZERO))
    fee_lines = [line for line in job_item.estimate_items if line.is_fee]
    for line in fee_lines:
        priced[line.id] = _price_fee(line, ctx, priced, subtotal)

    ordered = tuple(priced[line.id] for line in job_item.estimate_items)
    result = PricingResult(
        job_item_id=job_item.id,
        lines=ordered,
        labor_total=labor_total,
        parts_total=parts_total,
        package_add_on=package_add_on,
    )
    logger.info(
        "job_item_priced",
        extra={
            "job_item_id": str(job_item.id),
            "line_count": len(ordered),
            "review_count": len(result.review_flags),
            "is_package": is_package,
            "total": str(result.total.amount),
        },
    )
    return result


def apply_pricing(job_item: JobItem, result: PricingResult) -> None:
    """Write priced values back onto the job item's estimate lines."""
    for line in job_item.estimate_items:
        p = result.line_for(line.id)
        if p is None:
            continue
        if p.item_type is ItemType.LABOR and not line.quantity:
            line.quantity = p.quantity
        line.unit_price = p.unit_price.amount
        line.line_total = p.line_total.amount
        if p.cost is not None:
            line.cost = p.cost
        line.needs_review = p.needs_review
        line.review_reason = p.review_reason
