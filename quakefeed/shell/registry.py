"""Adapter registry - Imperative Shell.

Maps configured provider types to adapter classes and default endpoints.
"""

import requests

from quakefeed.core.config import ProviderConfig
from quakefeed.shell.adapter import ProviderAdapter
from quakefeed.shell.afad_client import AFAD_API_BASE, AFADClient
from quakefeed.shell.emsc_client import EMSC_API_BASE, EMSCClient
from quakefeed.shell.kandilli_client import KANDILLI_API_BASE, KandilliClient
from quakefeed.shell.usgs_client import USGS_API_BASE, USGSClient


ADAPTER_CLASSES: dict[str, type[ProviderAdapter]] = {
    "usgs": USGSClient,
    "emsc": EMSCClient,
    "afad": AFADClient,
    "kandilli": KandilliClient,
}

DEFAULT_BASE_URLS: dict[str, str] = {
    "usgs": USGS_API_BASE,
    "emsc": EMSC_API_BASE,
    "afad": AFAD_API_BASE,
    "kandilli": KANDILLI_API_BASE,
}


def create_adapter(
    provider: ProviderConfig,
    session: requests.Session | None = None,
) -> ProviderAdapter:
    """Create the adapter for a provider definition.

    Raises:
        ValueError: If the provider type is unknown
    """
    try:
        adapter_class = ADAPTER_CLASSES[provider.provider_type]
    except KeyError:
        raise ValueError(f"Unknown provider type: {provider.provider_type}")
    return adapter_class(provider, session=session)
