"""
billing_engines.tracer -- one structured log record per engine call.

Responsibility:
    ``@traced_engine`` wraps the pure calculations (pattern resolution,
    payout, invoice totals) and logs which engine ran, its version, how
    long it took and a short fingerprint of the inputs that decided the
    result.  Two calls with equal fingerprints saw equal inputs.

Architecture position:
    Engines.  Reads arguments and writes a log record; no other side effect.

Invariants enforced:
    - Fingerprints are stable across runs: mappings are serialized with
      sorted keys and hashed with SHA-256 (first 16 hex characters kept).
    - Arguments are never mutated.
    - A failing engine call logs nothing and its exception propagates.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import time
from collections.abc import Callable, Mapping
from typing import Any

from billing_kernel.logging_config import get_logger

TRACE_EVENT = "BILLING_ENGINE_TRACE"

logger = get_logger("engines.tracer")


def _stable_repr(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Mapping):
        pairs = sorted((str(k), _stable_repr(v)) for k, v in value.items())
        return "{" + ",".join(f"{k}:{v}" for k, v in pairs) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_stable_repr(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    """Hash of ``name=value`` for each of ``fields``; unbound names hash as null."""
    payload = "|".join(f"{name}={_stable_repr(arguments.get(name))}" for name in fields)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable[[Callable], Callable]:
    """
    Decorate a pure engine function so each successful call is traced.

    ``fingerprint_fields`` names parameters of the wrapped function, bound
    positionally or by keyword.  With no fields the fingerprint is ``""``.
    """

    def decorate(func: Callable) -> Callable:
        signature = inspect.signature(func)

        def fingerprint(args: tuple, kwargs: dict) -> str:
            if not fingerprint_fields:
                return ""
            try:
                bound: Mapping[str, Any] = signature.bind_partial(*args, **kwargs).arguments
            except TypeError:
                bound = kwargs
            return compute_input_fingerprint(fingerprint_fields, bound)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(
                TRACE_EVENT,
                extra={
                    "trace_type": TRACE_EVENT,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "function": func.__qualname__,
                    "input_fingerprint": fingerprint(args, kwargs),
                    "duration_ms": round(elapsed_ms, 2),
                },
            )
            return result

        wrapper.engine_name = engine_name  # type: ignore[attr-defined]
        wrapper.engine_version = engine_version  # type: ignore[attr-defined]
        return wrapper

    return decorate
