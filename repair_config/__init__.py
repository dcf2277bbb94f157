"""Shop configuration: schema and YAML loader."""

from repair_config.loader import compute_checksum, load_shop_config, load_yaml_file
from repair_config.schema import MarkupTier, ShopConfig

__all__ = [
    "MarkupTier",
    "ShopConfig",
    "compute_checksum",
    "load_shop_config",
    "load_yaml_file",
]
