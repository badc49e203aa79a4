from datetime import timedelta

import pytest

from ucp_framework.config import CheckoutConfig, derive_namespace
from ucp_framework.envelope import CHECKOUT_CAPABILITY, build_envelope
from ucp_framework.errors import ConfigError
from ucp_framework.models import MessageSeverity, PaymentPolicy

ENV_VARS = (
    "UCP_VERSION",
    "UCP_CURRENCY",
    "UCP_TAX_RATE",
    "UCP_SESSION_TTL_SECONDS",
    "UCP_BASE_URL",
    "UCP_NAMESPACE",
    "UCP_STRICT",
    "UCP_BUYER_FIELD_SEVERITY",
    "UCP_EMBEDDED_CHECKOUT",
    "UCP_PAYMENT_HANDLER_ID",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_derive_namespace():
    assert derive_namespace("https://www.myshop.com") == "com.myshop"
    assert derive_namespace("https://shop.example.co.uk/path") == "uk.co.example.shop"
    assert derive_namespace("http://localhost:8001") == "dev.localhost"


def test_defaults(clean_env):
    config = CheckoutConfig.from_env()
    assert config.ucp_version == "2026-01-11"
    assert config.currency == "USD"
    assert config.tax_rate == 0.0
    assert config.session_ttl == timedelta(minutes=30)
    assert config.base_url == "http://localhost:8001"
    assert config.namespace == "dev.localhost"
    assert config.payment_policy == PaymentPolicy.PERMISSIVE
    assert config.buyer_field_severity == MessageSeverity.RECOVERABLE
    assert config.embedded_checkout is True


def test_from_env_reads_overrides(clean_env):
    clean_env.setenv("UCP_CURRENCY", "eur")
    clean_env.setenv("UCP_TAX_RATE", "0.08")
    clean_env.setenv("UCP_SESSION_TTL_SECONDS", "60")
    clean_env.setenv("UCP_BASE_URL", "https://shop.example.com/")
    clean_env.setenv("UCP_STRICT", "true")
    clean_env.setenv("UCP_BUYER_FIELD_SEVERITY", "requires_buyer_input")
    clean_env.setenv("UCP_EMBEDDED_CHECKOUT", "false")

    config = CheckoutConfig.from_env()
    assert config.currency == "EUR"
    assert config.tax_rate == 0.08
    assert config.session_ttl == timedelta(seconds=60)
    assert config.base_url == "https://shop.example.com"
    assert config.namespace == "com.example.shop"
    assert config.is_strict
    assert config.buyer_field_severity == MessageSeverity.REQUIRES_BUYER_INPUT
    assert config.embedded_checkout is False


def test_invalid_settings_raise_config_error(clean_env):
    with pytest.raises(ConfigError):
        CheckoutConfig.build(payment_policy="strict", base_url="http://shop.example.com")
    with pytest.raises(ConfigError):
        CheckoutConfig.build(tax_rate=1.5)
    with pytest.raises(ConfigError):
        CheckoutConfig.build(currency="dollars")

    clean_env.setenv("UCP_SESSION_TTL_SECONDS", "half an hour")
    with pytest.raises(ConfigError):
        CheckoutConfig.from_env()


def test_strict_policy_allows_localhost():
    config = CheckoutConfig.build(payment_policy="strict")
    assert config.is_strict


def test_envelope_for_development_namespace():
    envelope = build_envelope(CheckoutConfig())
    dumped = envelope.model_dump(mode="json")

    assert dumped["version"] == "2026-01-11"
    assert dumped["capabilities"] == {CHECKOUT_CAPABILITY: [{"version": "2026-01-11"}]}
    handler = dumped["payment_handlers"]["com.demo.mock_payment"][0]
    assert handler["id"] == "mock_handler_1"
    assert handler["schema"] == "http://localhost:8001/schemas/payment-handler.json"
    binding = dumped["services"]["dev.ucp.shopping"][0]
    assert binding["transport"] == "embedded"
    assert binding["config"]["delegate"] == ["payment.instruments_change", "payment.credential"]


def test_envelope_for_merchant_namespace():
    config = CheckoutConfig(base_url="https://www.myshop.com", embedded_checkout=False)
    envelope = build_envelope(config)
    assert list(envelope.capabilities) == ["com.myshop.checkout"]
    assert list(envelope.payment_handlers) == ["com.myshop.payment"]
    assert envelope.services is None
