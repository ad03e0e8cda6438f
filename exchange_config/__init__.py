"""
exchange_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way components obtain settings.
    It loads YAML (the shipped ``defaults.yaml`` unless ``EXCHANGE_CONFIG``
    or an explicit path says otherwise), validates it into a frozen
    ``ExchangeConfig`` and logs an ``exchange_config_loaded`` trace with the
    checksum.

Architecture position:
    Sits above ``exchange_kernel`` and ``exchange_services``.  Neither
    imports this package; ``exchange_config.bridges`` turns config sections
    into their constructor inputs.

Failure modes:
    - FileNotFoundError for a missing file.
    - ValueError for out-of-range values.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from exchange_config.loader import load_yaml_file, parse_config
from exchange_config.schema import (
    CacheConfig,
    ConcurrencyConfig,
    DatabaseConfig,
    ExchangeConfig,
    LoggingConfig,
    SettlementConfig,
)

_logger = logging.getLogger("exchange_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_PATH_ENV = "EXCHANGE_CONFIG"


def get_active_config(path: Path | str | None = None) -> ExchangeConfig:
    """
    Load and validate the active configuration.

    Resolution order: explicit ``path``, then ``$EXCHANGE_CONFIG``, then
    the packaged defaults.
    """
    resolved = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    config = parse_config(load_yaml_file(resolved))
    _logger.info(
        "exchange_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(resolved),
        },
    )
    return config


__all__ = [
    "CacheConfig",
    "ConcurrencyConfig",
    "DatabaseConfig",
    "ExchangeConfig",
    "LoggingConfig",
    "SettlementConfig",
    "get_active_config",
]
