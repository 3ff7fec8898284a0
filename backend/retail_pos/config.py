# backend/retail_pos/config.py
from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/retail_pos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///retail_pos.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # POS behaviour (see PosSettings)
    POS_DEFAULT_CURRENCY = os.environ.get("POS_DEFAULT_CURRENCY", "USD")
    POS_TAX_RATE_BPS = int(os.environ.get("POS_TAX_RATE_BPS", "0"))
    POS_CASH_METHODS = os.environ.get("POS_CASH_METHODS", "cash")
    POS_ALLOW_NEGATIVE_STOCK = _env_bool("POS_ALLOW_NEGATIVE_STOCK")
    POS_TOKEN_TTL_HOURS = int(os.environ.get("POS_TOKEN_TTL_HOURS", "12"))
    POS_MAX_PAGE_SIZE = int(os.environ.get("POS_MAX_PAGE_SIZE", "200"))


@dataclass(frozen=True)
class PosSettings:
    """
    Explicit POS configuration handed to PosService at construction.

    Built once from the Flask config in create_app(); services never read
    app.config at call time, so tests can pass their own instance.
    """
    default_currency: str = "USD"
    tax_rate_bps: int = 0
    cash_methods: tuple[str, ...] = ("cash",)
    allow_negative_stock: bool = False
    token_ttl_hours: int = 12
    max_page_size: int = 200

    @classmethod
    def from_config(cls, config) -> "PosSettings":
        raw_methods = config.get("POS_CASH_METHODS", "cash")
        if isinstance(raw_methods, str):
            methods = tuple(m.strip().lower() for m in raw_methods.split(",") if m.strip())
        else:
            methods = tuple(str(m).lower() for m in raw_methods)

        return cls(
            default_currency=str(config.get("POS_DEFAULT_CURRENCY", "USD")).upper(),
            tax_rate_bps=int(config.get("POS_TAX_RATE_BPS", 0)),
            cash_methods=methods or ("cash",),
            allow_negative_stock=bool(config.get("POS_ALLOW_NEGATIVE_STOCK", False)),
            token_ttl_hours=int(config.get("POS_TOKEN_TTL_HOURS", 12)),
            max_page_size=int(config.get("POS_MAX_PAGE_SIZE", 200)),
        )

    def to_dict(self) -> dict:
        return {
            "currency": self.default_currency,
            "tax_rate_bps": self.tax_rate_bps,
            "cash_methods": list(self.cash_methods),
            "allow_negative_stock": self.allow_negative_stock,
            "max_page_size": self.max_page_size,
        }
