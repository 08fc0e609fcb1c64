"""
Configuration Loader (``billing_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the typed
``billing_config.schema`` dataclasses.  The single public entry point for
runtime config is ``billing_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Invalid values raise ``ValueError`` with a descriptive message; unknown
  keys are ignored, missing keys take the schema default.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from billing_config.schema import (
    BillingConfig,
    DocumentConfig,
    MatchingConfig,
    NumberingConfig,
    NumberingScope,
    RetryConfig,
)
from billing_kernel.domain.currency import CurrencyRegistry

_TIEBREAKS = frozenset({"longest_pattern"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 checksum of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _positive_int(value: Any, name: str, *, allow_zero: bool = False) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValueError(f"{name} must be {'>= 0' if allow_zero else '> 0'}, got {value}")
    return value


def parse_numbering(data: dict[str, Any]) -> NumberingConfig:
    defaults = NumberingConfig()
    try:
        scope = NumberingScope(data.get("scope", defaults.scope.value))
    except ValueError as exc:
        raise ValueError(
            f"numbering.scope must be one of {[s.value for s in NumberingScope]}, "
            f"got {data.get('scope')!r}"
        ) from exc
    return NumberingConfig(
        default_prefix=str(data.get("default_prefix", defaults.default_prefix) or ""),
        pad_width=_positive_int(data.get("pad_width", defaults.pad_width), "numbering.pad_width"),
        scope=scope,
        include_payer_abbreviation=bool(
            data.get("include_payer_abbreviation", defaults.include_payer_abbreviation)
        ),
        abbreviation_length=_positive_int(
            data.get("abbreviation_length", defaults.abbreviation_length),
            "numbering.abbreviation_length",
        ),
    )


def parse_retry(data: dict[str, Any]) -> RetryConfig:
    defaults = RetryConfig()
    backoff = data.get("backoff_seconds", defaults.backoff_seconds)
    if isinstance(backoff, bool) or not isinstance(backoff, (int, float)) or backoff < 0:
        raise ValueError(f"retry.backoff_seconds must be a non-negative number, got {backoff!r}")
    return RetryConfig(
        max_attempts=_positive_int(
            data.get("max_attempts", defaults.max_attempts), "retry.max_attempts"
        ),
        backoff_seconds=float(backoff),
    )


def parse_matching(data: dict[str, Any]) -> MatchingConfig:
    defaults = MatchingConfig()
    tiebreak = data.get("ambiguity_tiebreak", defaults.ambiguity_tiebreak)
    if tiebreak not in _TIEBREAKS:
        raise ValueError(
            f"matching.ambiguity_tiebreak must be one of {sorted(_TIEBREAKS)}, got {tiebreak!r}"
        )
    return MatchingConfig(
        min_pattern_length=_positive_int(
            data.get("min_pattern_length", defaults.min_pattern_length),
            "matching.min_pattern_length",
            allow_zero=True,
        ),
        ambiguity_tiebreak=tiebreak,
    )


def parse_document(data: dict[str, Any]) -> DocumentConfig:
    defaults = DocumentConfig()
    return DocumentConfig(
        vat_exemption_note=str(data.get("vat_exemption_note", defaults.vat_exemption_note)),
    )


def parse_config(data: dict[str, Any]) -> BillingConfig:
    """
    Parse a full configuration document.

    Raises:
        ValueError: on any invalid value.
    """
    if not isinstance(data, dict):
        raise ValueError("Billing configuration must be a mapping")

    currency = data.get("default_currency", "EUR")
    CurrencyRegistry.validate(currency)

    return BillingConfig(
        config_id=str(data.get("config_id", "default")),
        version=_positive_int(data.get("version", 1), "version"),
        default_currency=currency.upper().strip(),
        numbering=parse_numbering(data.get("numbering") or {}),
        retry=parse_retry(data.get("retry") or {}),
        matching=parse_matching(data.get("matching") or {}),
        document=parse_document(data.get("document") or {}),
        checksum=compute_checksum(data),
    )


def load_config_file(path: Path) -> BillingConfig:
    """Load and parse one YAML configuration file."""
    return parse_config(load_yaml_file(path))
