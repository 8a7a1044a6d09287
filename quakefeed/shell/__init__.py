"""Imperative Shell - I/O and side effects.

This module contains all code that interacts with external systems:
- Provider adapters (HTTP): USGS, EMSC, AFAD, Kandilli
- Polling scheduler (threads, timers)
- Configuration loading (environment/files)

Keep this layer thin and simple. All business logic should be in core.
"""

from quakefeed.shell.adapter import FetchError, ParseError, PollResult, ProviderAdapter
from quakefeed.shell.config_loader import load_config, load_config_from_env
from quakefeed.shell.registry import create_adapter
from quakefeed.shell.scheduler import PollingScheduler

__all__ = [
    "FetchError",
    "ParseError",
    "PollResult",
    "ProviderAdapter",
    "load_config",
    "load_config_from_env",
    "create_adapter",
    "PollingScheduler",
]
