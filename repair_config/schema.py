"""
Shop Configuration Schema.

Defines the per-shop settings the workflow needs: which status derivation
runs, the currency, labor rates, the markup tiers used to price parts from
cost, tax rates, and whether finalized invoices are sent to the customer.
Actual values are loaded from YAML (see ``repair_config.loader``) or
passed in by the caller.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Self

from repair_engines.tax import TaxRates
from repair_kernel.domain.job import WorkflowMode
from repair_kernel.domain.values import to_decimal
from repair_kernel.exceptions import InvalidConfigError
from repair_kernel.logging_config import get_logger

logger = get_logger("config.schema")


@dataclass(frozen=True)
class MarkupTier:
    """Markup percent applied to part costs up to ``up_to`` (open when None)."""
    percent: Decimal
    up_to: Decimal | None = None

    def __post_init__(self):
        if self.percent < 0:
            raise InvalidConfigError("markup_tiers.percent", "cannot be negative")
        if self.up_to is not None and self.up_to <= 0:
            raise InvalidConfigError("markup_tiers.up_to", "must be positive")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        up_to = data.get("up_to")
        return cls(
            percent=to_decimal(data.get("percent")),
            up_to=None if up_to is None else to_decimal(up_to),
        )


@dataclass
class ShopConfig:
    """
    Configuration schema for one repair shop.

    Override at instantiation with shop-specific values:

        config = ShopConfig(
            shop_id="shop-1",
            workflow_mode=WorkflowMode.SIMPLIFIED,
            labor_rate=Decimal("120.00"),
        )
    """

    shop_id: str
    workflow_mode: WorkflowMode = WorkflowMode.EXPLICIT
    currency: str = "USD"

    # Labor
    default_hourly_rate: Decimal = Decimal("0")  # technician cost fallback
    labor_rate: Decimal | None = None  # price charged per labor hour

    # Parts
    markup_tiers: tuple[MarkupTier, ...] = field(default_factory=tuple)

    # Tax
    tax_rates: TaxRates = field(default_factory=TaxRates)

    # Customer communication
    customer_invoice_enabled: bool = False

    def __post_init__(self):
        if not self.shop_id:
            raise InvalidConfigError("shop_id", "is required")

        if isinstance(self.workflow_mode, str):
            try:
                self.workflow_mode = WorkflowMode(self.workflow_mode)
            except ValueError:
                raise InvalidConfigError(
                    "workflow_mode",
                    f"must be one of {[m.value for m in WorkflowMode]}, "
                    f"got '{self.workflow_mode}'",
                ) from None

        code = (self.currency or "").upper()
        if len(code) != 3 or not code.isalpha():
            raise InvalidConfigError("currency", f"not a currency code: '{self.currency}'")
        self.currency = code

        if self.default_hourly_rate < 0:
            raise InvalidConfigError("default_hourly_rate", "cannot be negative")
        if self.labor_rate is not None and self.labor_rate < 0:
            raise InvalidConfigError("labor_rate", "cannot be negative")

        bounded = [t.up_to for t in self.markup_tiers if t.up_to is not None]
        if bounded != sorted(bounded):
            raise InvalidConfigError("markup_tiers", "must be ordered by up_to")
        if any(t.up_to is None for t in self.markup_tiers[:-1]):
            raise InvalidConfigError("markup_tiers", "only the last tier may be open-ended")

        logger.info(
            "shop_config_initialized",
            extra={
                "shop_id": self.shop_id,
                "workflow_mode": self.workflow_mode.value,
                "currency": self.currency,
                "markup_tier_count": len(self.markup_tiers),
                "customer_invoice_enabled": self.customer_invoice_enabled,
            },
        )

    def markup_percent(self, cost: Decimal) -> Decimal | None:
        """Markup percent of the first tier covering ``cost``."""
        for tier in self.markup_tiers:
            if tier.up_to is None or cost <= tier.up_to:
                return tier.percent
        return None

    @classmethod
    def with_defaults(cls, shop_id: str) -> Self:
        """Create config with defaults: explicit workflow, no markup, no tax."""
        logger.info("shop_config_created_with_defaults", extra={"shop_id": shop_id})
        return cls(shop_id=shop_id)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from a dictionary (e.g., parsed YAML)."""
        logger.info(
            "shop_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        if "shop_id" not in data:
            raise InvalidConfigError("shop_id", "is required")

        labor_rate = data.get("labor_rate")
        tax = data.get("tax_rates") or {}
        try:
            tax_rates = TaxRates.from_sales_tax(
                tax.get("sales_tax"),
                {k: v for k, v in tax.items() if k != "sales_tax"},
            )
            return cls(
                shop_id=str(data["shop_id"]),
                workflow_mode=data.get("workflow_mode", WorkflowMode.EXPLICIT.value),
                currency=data.get("currency", "USD"),
                default_hourly_rate=to_decimal(data.get("default_hourly_rate")),
                labor_rate=None if labor_rate is None else to_decimal(labor_rate),
                markup_tiers=tuple(
                    MarkupTier.from_dict(t) for t in data.get("markup_tiers") or ()
                ),
                tax_rates=tax_rates,
                customer_invoice_enabled=bool(data.get("customer_invoice_enabled", False)),
            )
        except (TypeError, ValueError) as e:
            raise InvalidConfigError("shop_config", str(e)) from e
