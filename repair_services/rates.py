"""Rate provider backed by shop configuration."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from repair_config.schema import ShopConfig
from repair_kernel.domain.values import Money
from repair_kernel.logging_config import get_logger

logger = get_logger("services.rates")

_HUNDRED = Decimal("100")


class ConfiguredRateProvider:
    """
    ``RateProvider`` reading labor rates and markup tiers from ``ShopConfig``.

    Shops without a configuration have no labor rate and no markup, so
    pricing falls through to the next price source.
    """

    def __init__(self, configs: Iterable[ShopConfig]):
        self._configs = {config.shop_id: config for config in configs}

    def _config(self, shop_id: str) -> ShopConfig | None:
        config = self._configs.get(shop_id)
        if config is None:
            logger.debug("rate_config_missing", extra={"shop_id": shop_id})
        return config

    def labor_rate(self, shop_id: str, vehicle_id: str | None) -> Money | None:
        config = self._config(shop_id)
        if config is None or config.labor_rate is None:
            return None
        return Money(config.labor_rate, config.currency)

    def markup(self, shop_id: str, cost: Money) -> Money | None:
        config = self._config(shop_id)
        if config is None:
            return None
        percent = config.markup_percent(cost.amount)
        if percent is None:
            return None
        return (cost * (1 + percent / _HUNDRED)).round()
