"""
Checkout engine configuration.

Settings are fixed once, when the session manager is built.  `from_env()`
reads the same `UCP_*` variables the reference seller service uses.
"""

from __future__ import annotations

import os
from datetime import timedelta
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ucp_framework.currency import normalize_currency
from ucp_framework.errors import ConfigError
from ucp_framework.models import MessageSeverity, PaymentPolicy

DEFAULT_UCP_VERSION = "2026-01-11"
LOCAL_HOSTS = {"localhost", "127.0.0.1"}


def derive_namespace(base_url: str) -> str:
    """
    Reverse-DNS namespace for a shop URL: ``https://www.myshop.com`` -> ``com.myshop``.
    Local development hosts map to ``dev.localhost``.
    """
    hostname = urlparse(base_url).hostname or ""
    if not hostname or hostname in LOCAL_HOSTS:
        return "dev.localhost"
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return ".".join(reversed(hostname.split(".")))


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class CheckoutConfig(BaseModel):
    ucp_version: str = DEFAULT_UCP_VERSION
    currency: str = "USD"
    tax_rate: float = Field(default=0.0, ge=0.0, lt=1.0)
    session_ttl: timedelta = timedelta(minutes=30)
    base_url: str = "http://localhost:8001"
    namespace: Optional[str] = None
    payment_policy: PaymentPolicy = PaymentPolicy.PERMISSIVE
    buyer_field_severity: MessageSeverity = MessageSeverity.RECOVERABLE
    embedded_checkout: bool = True
    payment_handler_id: str = "mock_handler_1"
    max_write_attempts: int = Field(default=3, ge=1)

    @field_validator("currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        return normalize_currency(value)

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @model_validator(mode="after")
    def _check_strict_base_url(self) -> CheckoutConfig:
        if self.payment_policy == PaymentPolicy.STRICT:
            parsed = urlparse(self.base_url)
            if parsed.scheme != "https" and parsed.hostname not in LOCAL_HOSTS:
                raise ValueError("strict payment policy requires an https:// base_url")
        if self.namespace is None:
            self.namespace = derive_namespace(self.base_url)
        return self

    @property
    def is_strict(self) -> bool:
        return self.payment_policy == PaymentPolicy.STRICT

    @classmethod
    def build(cls, **values) -> CheckoutConfig:
        """Validate settings, surfacing problems as `ConfigError`."""
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc

    @classmethod
    def from_env(cls) -> CheckoutConfig:
        ttl_raw = os.getenv("UCP_SESSION_TTL_SECONDS", "1800")
        try:
            session_ttl = timedelta(seconds=int(ttl_raw))
        except ValueError as exc:
            raise ConfigError(f"UCP_SESSION_TTL_SECONDS must be an integer, got {ttl_raw!r}") from exc

        values: dict = {
            "ucp_version": os.getenv("UCP_VERSION", DEFAULT_UCP_VERSION),
            "currency": os.getenv("UCP_CURRENCY", "USD"),
            "tax_rate": os.getenv("UCP_TAX_RATE", "0"),
            "session_ttl": session_ttl,
            "base_url": os.getenv("UCP_BASE_URL", "http://localhost:8001"),
            "namespace": os.getenv("UCP_NAMESPACE") or None,
            "payment_policy": (
                PaymentPolicy.STRICT if _env_flag("UCP_STRICT", False) else PaymentPolicy.PERMISSIVE
            ),
            "buyer_field_severity": os.getenv("UCP_BUYER_FIELD_SEVERITY", "recoverable"),
            "embedded_checkout": _env_flag("UCP_EMBEDDED_CHECKOUT", True),
            "payment_handler_id": os.getenv("UCP_PAYMENT_HANDLER_ID", "mock_handler_1"),
        }
        return cls.build(**values)
