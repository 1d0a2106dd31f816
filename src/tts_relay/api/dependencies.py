"""
FastAPI Dependency Injection Providers.

The application owns one ServiceContainer, built by create_app() and
stored on ``app.state.container``. Route handlers receive its parts via
Depends(); nothing here is a module-level singleton except the cached
Settings.

Architecture:
    get_settings()        -> Settings (cached, config/settings.yaml or defaults)
    build_container()     -> storage, registry, orchestrator, delivery, scheduler
    get_container(req)    -> request.app.state.container
    get_orchestrator(req) -> container.orchestrator
    get_delivery(req)     -> container.delivery

Usage in Route Handlers:
    @router.get("/tts/status/{conversion_id}")
    def status(conversion_id: str, orchestrator=Depends(get_orchestrator)):
        return orchestrator.get_status(conversion_id).to_dict()
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional

import httpx
from fastapi import Request

from tts_relay.audio.storage import AudioStorage
from tts_relay.core.config import RelayConfig, Settings, load_settings_or_default
from tts_relay.providers.base import BaseProvider
from tts_relay.providers.registry import ProviderRegistry, create_providers
from tts_relay.services.cleanup import CleanupScheduler
from tts_relay.services.delivery import AudioDelivery
from tts_relay.services.orchestrator import ConversionOrchestrator


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    Reads $TTS_RELAY_SETTINGS or config/settings.yaml; falls back to
    built-in defaults (plus env overrides) when the file is absent.
    """
    return load_settings_or_default()


@dataclass
class ServiceContainer:
    settings: Settings
    config: RelayConfig
    storage: AudioStorage
    registry: ProviderRegistry
    orchestrator: ConversionOrchestrator
    delivery: AudioDelivery
    scheduler: CleanupScheduler

    def close(self) -> None:
        self.scheduler.stop()
        self.orchestrator.shutdown()


def build_container(
    settings: Settings,
    providers: Optional[Iterable[BaseProvider]] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> ServiceContainer:
    """
    Wire every service from settings.

    Args:
        settings: Raw settings; validated here.
        providers: Explicit provider list (tests); built from config when None.
        transport: httpx transport for config-built remote providers.

    Raises:
        ConfigValidationError: If the settings are invalid.
    """
    config = settings.get_config()
    storage = AudioStorage(config.storage.base_dir, config.storage.max_file_size)
    provider_list = list(providers) if providers is not None else create_providers(config, transport)
    registry = ProviderRegistry(provider_list)
    orchestrator = ConversionOrchestrator(registry, storage, config)
    delivery = AudioDelivery(storage, config.server.public_base_url)
    scheduler = CleanupScheduler(orchestrator, storage, config.cleanup)
    return ServiceContainer(
        settings=settings,
        config=config,
        storage=storage,
        registry=registry,
        orchestrator=orchestrator,
        delivery=delivery,
        scheduler=scheduler,
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_orchestrator(request: Request) -> ConversionOrchestrator:
    return get_container(request).orchestrator


def get_delivery(request: Request) -> AudioDelivery:
    return get_container(request).delivery
