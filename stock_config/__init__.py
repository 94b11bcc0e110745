"""
stock_config -- single public entrypoint for stock configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive the resulting frozen
    ``StockConfiguration`` (or its sections) by injection; none of them read
    files or environment variables.

Architecture position:
    Configuration -- sits above ``stock_kernel`` / ``stock_engines`` and below
    ``stock_services`` / ``stock_modules``.  The kernel MUST NEVER import
    from ``stock_config``.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set with the requested name.
    - ``ValueError`` -- unknown keys or invalid values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``STOCK_CONFIG_TRACE`` log entry with config_id, version and checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from stock_config.loader import load_yaml_file, parse_configuration
from stock_config.schema import InventorySettings, ReplenishmentSettings, StockConfiguration

_logger = logging.getLogger("stock_kernel.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(
    config_dir: Path | None = None,
    set_name: str = "default",
) -> StockConfiguration:
    """The ONLY public configuration entrypoint.

    Args:
        config_dir: Override path to the configuration sets directory.
            Defaults to stock_config/sets/.
        set_name: Name of the set directory holding ``root.yaml``.

    Returns:
        Frozen StockConfiguration with its source checksum.

    Raises:
        FileNotFoundError: If the set has no root.yaml.
        ValueError: If validation fails.
    """
    sets_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    root = sets_dir / set_name / "root.yaml"
    if not root.is_file():
        raise FileNotFoundError(f"No configuration set {set_name!r} under {sets_dir}")

    config = parse_configuration(load_yaml_file(root))

    _logger.info(
        "STOCK_CONFIG_TRACE",
        extra={
            "trace_type": "STOCK_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "set_name": set_name,
        },
    )
    return config


__all__ = [
    "get_active_config",
    "InventorySettings",
    "ReplenishmentSettings",
    "StockConfiguration",
]
