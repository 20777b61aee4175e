"""
Configuration helpers for bookmark storage, model pricing and spend caps.

Every setting resolves with the same precedence:
1) explicit argument
2) LINKVAULT_* environment variable
3) module default
"""

from __future__ import annotations

import os
from pathlib import Path


DEFAULT_DB_PATH = "~/.linkvault/bookmarks.duckdb"
ENV_DB_PATH = "LINKVAULT_DB_PATH"

DEFAULT_EMBEDDING_MODEL = "gemini-embedding-001"
DEFAULT_EMBEDDING_DIM = 768
# USD per one million input tokens.
DEFAULT_EMBEDDING_COST_PER_MTOK = 0.15

DEFAULT_CHAT_MODEL = "gemini-2.0-flash"
DEFAULT_CHAT_INPUT_COST_PER_MTOK = 0.10
DEFAULT_CHAT_OUTPUT_COST_PER_MTOK = 0.40

DEFAULT_DAILY_LIMIT_USD = 1.00
DEFAULT_MONTHLY_LIMIT_USD = 30.00

DEFAULT_LOG_LEVEL = "INFO"


def resolve_db_path(override_path: str | None = None) -> str:
    """
    Resolve the DuckDB path from CLI override, env var, or default.

    ``:memory:`` is passed through untouched so tests and one-off runs can
    use a throwaway database.
    """
    raw_path = override_path or os.getenv(ENV_DB_PATH) or DEFAULT_DB_PATH
    if raw_path == ":memory:":
        return raw_path
    resolved = Path(raw_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def resolve_cost_limits(
    daily_limit_usd: float | None = None,
    monthly_limit_usd: float | None = None,
) -> tuple[float, float]:
    """Return the (daily, monthly) spend caps in USD."""
    daily = (
        daily_limit_usd
        if daily_limit_usd is not None
        else _env_float("LINKVAULT_DAILY_LIMIT_USD", DEFAULT_DAILY_LIMIT_USD)
    )
    monthly = (
        monthly_limit_usd
        if monthly_limit_usd is not None
        else _env_float("LINKVAULT_MONTHLY_LIMIT_USD", DEFAULT_MONTHLY_LIMIT_USD)
    )
    if daily <= 0 or monthly <= 0:
        raise ValueError("Cost limits must be positive.")
    return daily, monthly


def resolve_embedding_cost_per_mtok(override: float | None = None) -> float:
    if override is not None:
        return override
    return _env_float(
        "LINKVAULT_EMBEDDING_COST_PER_MTOK", DEFAULT_EMBEDDING_COST_PER_MTOK
    )


def resolve_chat_pricing(
    input_cost_per_mtok: float | None = None,
    output_cost_per_mtok: float | None = None,
) -> tuple[float, float]:
    """Return (input, output) chat-model prices in USD per million tokens."""
    input_cost = (
        input_cost_per_mtok
        if input_cost_per_mtok is not None
        else _env_float(
            "LINKVAULT_CHAT_INPUT_COST_PER_MTOK", DEFAULT_CHAT_INPUT_COST_PER_MTOK
        )
    )
    output_cost = (
        output_cost_per_mtok
        if output_cost_per_mtok is not None
        else _env_float(
            "LINKVAULT_CHAT_OUTPUT_COST_PER_MTOK", DEFAULT_CHAT_OUTPUT_COST_PER_MTOK
        )
    )
    return input_cost, output_cost


def resolve_log_level(override: str | None = None) -> str:
    return (override or os.getenv("LINKVAULT_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper()
