"""
Provider Registry.

ProviderRegistry holds the provider chain in failover order. The order is
fixed at construction: a stable ascending sort on ``priority``, so equal
priorities keep their registration order. Priority is only an ordering
key; 1.5 sits between 1 and 2 and means nothing more.

create_providers() builds the enabled providers from configuration.
"""
from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import httpx

from tts_relay.core.config import ConfigValidationError, ProviderConfig, RelayConfig
from tts_relay.core.logging import get_logger, info
from tts_relay.providers.base import BaseProvider

_LOG = get_logger("tts-relay.providers.registry")


class ProviderRegistry:
    """Immutable, priority-ordered collection of providers."""

    def __init__(self, providers: Iterable[BaseProvider]):
        items = list(providers)
        seen = set()
        for p in items:
            if p.name in seen:
                raise ValueError(f"duplicate provider name: {p.name}")
            seen.add(p.name)
        self._providers: Tuple[BaseProvider, ...] = tuple(sorted(items, key=lambda p: p.priority))

    def __iter__(self) -> Iterator[BaseProvider]:
        return iter(self._providers)

    def __len__(self) -> int:
        return len(self._providers)

    @property
    def providers(self) -> Tuple[BaseProvider, ...]:
        return self._providers

    def names(self) -> List[str]:
        return [p.name for p in self._providers]

    def get(self, name: str) -> Optional[BaseProvider]:
        for p in self._providers:
            if p.name == name:
                return p
        return None

    def close(self) -> None:
        for p in self._providers:
            p.close()


def _create_provider(
    key: str,
    cfg: ProviderConfig,
    probe_timeout_s: float,
    transport: Optional[httpx.BaseTransport],
) -> BaseProvider:
    common = dict(priority=cfg.priority, timeout_s=cfg.timeout_s, probe_timeout_s=probe_timeout_s)

    if key == "mock":
        from tts_relay.providers.mock import MockProvider
        return MockProvider(**common)

    remote: Dict[str, object] = dict(common, api_key=cfg.api_key, base_url=cfg.base_url, transport=transport)

    if key == "google":
        from tts_relay.providers.google import GoogleTTSProvider
        return GoogleTTSProvider(**remote)

    if key == "voicerss":
        from tts_relay.providers.voicerss import VoiceRSSProvider
        return VoiceRSSProvider(**remote)

    if key == "ttsmp3":
        from tts_relay.providers.ttsmp3 import TTSMP3Provider
        return TTSMP3Provider(**remote)

    raise ConfigValidationError(f"Unknown provider: {key}")


def create_providers(
    config: RelayConfig,
    transport: Optional[httpx.BaseTransport] = None,
) -> List[BaseProvider]:
    """
    Build every enabled provider from configuration.

    Args:
        config: Validated configuration.
        transport: Optional httpx transport shared by remote providers
            (tests pass an httpx.MockTransport).

    Raises:
        ConfigValidationError: If a configured provider name is unknown.
    """
    providers: List[BaseProvider] = []
    for key, cfg in config.providers.items():
        if not cfg.enabled:
            continue
        providers.append(_create_provider(key, cfg, config.orchestrator.probe_timeout_s, transport))

    info(_LOG, "providers_created", providers=[f"{p.name}:{p.priority}" for p in providers])
    return providers
