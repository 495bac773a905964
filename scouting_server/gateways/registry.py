"""Builds the configured adapters and hands out the keys each one needs."""

from typing import Optional, Tuple

from scouting_server.config import Settings, settings
from scouting_server.gateways.base import GatewayAdapter
from scouting_server.gateways.cinetpay import CinetPayAdapter
from scouting_server.gateways.paydunya import PayDunyaAdapter

PROVIDERS = ("cinetpay", "paydunya")


def get_adapter(provider: str, config: Optional[Settings] = None) -> GatewayAdapter:
    config = config or settings
    if provider == "cinetpay":
        return CinetPayAdapter()
    if provider == "paydunya":
        return PayDunyaAdapter(
            api_base_url=config.paydunya_api_base_url,
            timeout=config.gateway_timeout_seconds,
        )
    raise ValueError(f"Unknown payment provider: {provider}")


def get_keys(provider: str, config: Optional[Settings] = None) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(secret_key, api_key)`` for the provider."""
    config = config or settings
    if provider == "cinetpay":
        return config.cinetpay_secret_key, config.cinetpay_api_key
    if provider == "paydunya":
        return config.paydunya_secret_key, config.paydunya_api_key
    raise ValueError(f"Unknown payment provider: {provider}")
