"""
billing_config -- single public entrypoint for billing configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive the returned BillingConfig
    by constructor injection and never read files or environment variables
    themselves.

Architecture position:
    Configuration -- sits above ``billing_kernel`` and below
    ``billing_services``.  The kernel MUST NEVER import from
    ``billing_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested configuration file is missing.
    - ``ValueError`` -- validation failures.

Every successful ``get_active_config()`` call emits a
``billing_config_loaded`` log entry with the config id, version and
checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from billing_config.loader import load_config_file
from billing_config.schema import (
    BillingConfig,
    DocumentConfig,
    MatchingConfig,
    NumberingConfig,
    NumberingScope,
    RetryConfig,
)

_logger = logging.getLogger("billing_kernel.config")

# Default configuration set
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

__all__ = [
    "BillingConfig",
    "DocumentConfig",
    "MatchingConfig",
    "NumberingConfig",
    "NumberingScope",
    "RetryConfig",
    "get_active_config",
]


def get_active_config(config_path: Path | str | None = None) -> BillingConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a YAML configuration file.
            Defaults to billing_config/sets/default.yaml.

    Returns:
        BillingConfig -- frozen, validated configuration.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If configuration validation fails.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = load_config_file(path)

    _logger.info(
        "billing_config_loaded",
        extra={
            "trace_type": "BILLING_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "numbering_scope": config.numbering.scope.value,
            "default_currency": config.default_currency,
        },
    )
    return config
