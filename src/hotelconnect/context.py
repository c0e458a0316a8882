"""Process-wide application context.

``AppContext`` holds the long-lived handles the rest of the core needs: the
document store, the translation gateway, the namespace layout and the
configuration.  It is created once at startup with ``AppContext.create``
and injected into every component; nothing reaches for a global.

Every live subscription a component opens is registered with ``track()``
so that ``close()`` can detach all of them at shutdown before releasing the
gateway's HTTP client and the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from hotelconnect.config import AppConfig
from hotelconnect.errors import ConfigurationError, OperationContext
from hotelconnect.store import (
    DocumentStore,
    InMemoryDocumentStore,
    SqliteDocumentStore,
    StoreError,
    StorePaths,
    Subscription,
)
from hotelconnect.translation import TranslationGateway

logger = logging.getLogger(__name__)


def build_store(cfg: AppConfig) -> DocumentStore:
    """Create the configured store adapter.

    Raises:
        ConfigurationError: Unknown backend, missing SQLite path, or a
            SQLite file that cannot be opened.
    """
    backend = cfg.store.backend
    if backend == "memory":
        return InMemoryDocumentStore()
    if backend == "sqlite":
        if not cfg.store.path:
            raise ConfigurationError(
                context=OperationContext("context.build_store", details="store.path is empty")
            )
        try:
            return SqliteDocumentStore(cfg.store.absolute_path)
        except (StoreError, OSError) as exc:
            raise ConfigurationError(
                context=OperationContext(
                    "context.build_store", details=f"cannot open {cfg.store.absolute_path}"
                ),
                cause=exc,
            ) from exc
    raise ConfigurationError(
        context=OperationContext("context.build_store", details=f"unknown backend {backend!r}")
    )


@dataclass
class AppContext:
    """Long-lived handles shared by every component."""

    config: AppConfig
    store: DocumentStore
    gateway: TranslationGateway
    paths: StorePaths
    _subscriptions: list[Subscription] = field(default_factory=list, repr=False)
    _closed: bool = field(default=False, repr=False)

    @classmethod
    def create(
        cls,
        cfg: AppConfig,
        *,
        store: DocumentStore | None = None,
        gateway: TranslationGateway | None = None,
    ) -> AppContext:
        """Build the context from configuration.

        ``store`` and ``gateway`` may be injected (tests do); otherwise they
        are built from ``cfg``.

        Raises:
            ConfigurationError: No tenant id, or the store cannot be built.
        """
        if not cfg.store.app_id or not cfg.store.app_id.strip():
            raise ConfigurationError(
                context=OperationContext("context.create", details="store.app_id is empty")
            )
        if store is None:
            store = build_store(cfg)
        if gateway is None:
            gateway = TranslationGateway(
                url=cfg.translation.gateway_url,
                timeout_seconds=cfg.translation.timeout_seconds,
                max_retries=cfg.translation.max_retries,
            )
        logger.info(
            "AppContext ready (app_id=%s, store=%s)", cfg.store.app_id, type(store).__name__
        )
        return cls(config=cfg, store=store, gateway=gateway, paths=StorePaths(cfg.store.app_id))

    def track(self, subscription: Subscription) -> Subscription:
        """Register a live subscription for teardown at ``close()``."""
        self._subscriptions = [sub for sub in self._subscriptions if sub.active]
        self._subscriptions.append(subscription)
        return subscription

    @property
    def active_subscriptions(self) -> int:
        return sum(1 for sub in self._subscriptions if sub.active)

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Detach every tracked subscription, then release gateway and store."""
        if self._closed:
            return
        self._closed = True
        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions.clear()
        await self.gateway.aclose()
        await self.store.close()
        logger.info("AppContext closed")
