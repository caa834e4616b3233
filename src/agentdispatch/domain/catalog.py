"""Tool Catalog - Cached, Single-Flight Tool Discovery per Domain.

Keeps, per domain, the freshest known CatalogSnapshot fetched from every tool
provider registered for that domain.

Refresh Policy:
    - snapshot() serves the cached snapshot while it is younger than the TTL
      and has not been invalidated; otherwise it refreshes
    - refresh() asks every provider concurrently, merges by tool name (the
      last-registered provider wins a conflict) and swaps the cached
      snapshot for a brand new object
    - at most one refresh per domain is in flight: concurrent callers await
      the same task instead of starting their own fetch
    - a failed refresh serves the previous snapshot if there is one (logged),
      and raises DiscoveryFailed if there is not
    - after a failed refresh the stale snapshot is served without I/O for
      `retry_after` seconds; invalidate() lifts that wait
    - a refresh fails as a whole when any provider fails; a partial catalog
      is never published

The snapshot slot is the only process-wide mutable state in the pipeline.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timedelta
from typing import Any, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from .domain_type import Domain, FailureKind
from .domain_value import CatalogSnapshot, ToolDescriptor, utc_now
from .errors import DiscoveryFailed

logger = structlog.get_logger()


@runtime_checkable
class ToolProvider(Protocol):
    """A remote registry of tools for one domain.

    Implementations translate their own transport failures into
    ToolInvocationError, or let classify_error() decide afterwards.
    """

    source_id: str
    domain: Domain

    async def discover_tools(self, domain: Domain) -> Sequence[ToolDescriptor]: ...

    async def invoke_tool(
        self,
        name: str,
        domain: Domain,
        arguments: Mapping[str, Any],
        timeout: float,
    ) -> Any: ...

    def classify_error(self, exc: BaseException) -> FailureKind: ...


class ToolCatalog(BaseModel):
    """Per-domain snapshot cache with TTL, invalidation and single-flight refresh.

    Attributes:
        ttl: Seconds a snapshot stays fresh
        retry_after: Seconds to keep serving a stale snapshot before refetching
        clock: UTC time source (injectable for tests)
    """

    ttl: float = Field(default=300.0, gt=0)
    retry_after: float = Field(default=30.0, ge=0.0)
    clock: Callable[[], datetime] = utc_now
    _providers: dict[Domain, list[ToolProvider]] = PrivateAttr(default_factory=dict)
    _snapshots: dict[Domain, CatalogSnapshot] = PrivateAttr(default_factory=dict)
    _invalidated: set[Domain] = PrivateAttr(default_factory=set)
    _stale: set[Domain] = PrivateAttr(default_factory=set)
    _failed_at: dict[Domain, datetime] = PrivateAttr(default_factory=dict)
    _locks: dict[Domain, asyncio.Lock] = PrivateAttr(default_factory=dict)
    _inflight: dict[Domain, asyncio.Task[CatalogSnapshot]] = PrivateAttr(default_factory=dict)

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, provider: ToolProvider) -> None:
        """Add a provider to its domain. Later registrations win name conflicts."""
        self._providers.setdefault(provider.domain, []).append(provider)
        logger.info("catalog.provider.registered", domain=str(provider.domain), source=provider.source_id)

    def providers(self, domain: Domain) -> tuple[ToolProvider, ...]:
        return tuple(self._providers.get(domain, ()))

    def provider_for(self, tool: ToolDescriptor) -> ToolProvider:
        """Provider that advertised `tool` (last registered one on conflict)."""
        candidates = self._providers.get(tool.domain, [])
        for provider in reversed(candidates):
            if provider.source_id == tool.source:
                return provider
        raise KeyError(f"No provider registered for {tool.domain}/{tool.source}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def current(self, domain: Domain) -> CatalogSnapshot | None:
        """Cached snapshot, fresh or not. Never performs I/O."""
        return self._snapshots.get(domain)

    def is_fresh(self, domain: Domain) -> bool:
        snapshot = self._snapshots.get(domain)
        if snapshot is None or domain in self._invalidated:
            return False
        return not snapshot.is_expired(timedelta(seconds=self.ttl), self.clock())

    def is_stale(self, domain: Domain) -> bool:
        """True when the cached snapshot survived a failed refresh."""
        return domain in self._stale

    def is_backing_off(self, domain: Domain) -> bool:
        """A recent refresh failed and the stale snapshot is served as is."""
        failed_at = self._failed_at.get(domain)
        if failed_at is None:
            return False
        return self.clock() - failed_at < timedelta(seconds=self.retry_after)

    async def snapshot(self, domain: Domain) -> CatalogSnapshot:
        """Cached snapshot if fresh or backing off, otherwise the result of a refresh.

        Raises:
            DiscoveryFailed: Refresh failed and nothing was cached
        """
        if self.is_fresh(domain) or self.is_backing_off(domain):
            return self._snapshots[domain]
        return await self.refresh(domain)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def invalidate(self, domain: Domain) -> None:
        """Force the next snapshot() to refresh. The old snapshot stays as fallback."""
        self._invalidated.add(domain)
        self._failed_at.pop(domain, None)
        logger.info("catalog.invalidated", domain=str(domain))

    async def refresh(self, domain: Domain) -> CatalogSnapshot:
        """Fetch, merge and swap; or join the refresh already in flight.

        Raises:
            DiscoveryFailed: Refresh failed and nothing was cached
        """
        lock = self._locks.setdefault(domain, asyncio.Lock())
        async with lock:
            task = self._inflight.get(domain)
            if task is None:
                task = asyncio.create_task(self._fetch(domain), name=f"catalog-refresh-{domain}")
                self._inflight[domain] = task
                task.add_done_callback(lambda done, d=domain: self._clear_inflight(d, done))
            else:
                logger.debug("catalog.refresh.joined", domain=str(domain))
        # Shielded so one caller's cancellation does not abort the shared fetch.
        return await asyncio.shield(task)

    def _clear_inflight(self, domain: Domain, task: asyncio.Task[CatalogSnapshot]) -> None:
        if self._inflight.get(domain) is task:
            del self._inflight[domain]

    async def _fetch(self, domain: Domain) -> CatalogSnapshot:
        providers = list(self._providers.get(domain, ()))
        log = logger.bind(domain=str(domain), providers=len(providers))
        log.info("catalog.refresh.started")

        try:
            if not providers:
                raise LookupError("no tool providers registered")
            results = await asyncio.gather(*(p.discover_tools(domain) for p in providers))
        except Exception as exc:  # any provider failure fails the refresh
            return self._fail(domain, exc)

        merged: dict[str, ToolDescriptor] = {}
        for provider, tools in zip(providers, results, strict=True):
            for tool in tools:
                if tool.domain != domain:
                    log.warning("catalog.refresh.foreign_tool", tool=tool.name, source=provider.source_id)
                    continue
                merged[tool.name] = tool

        snapshot = CatalogSnapshot(domain=domain, tools=tuple(merged.values()), fetched_at=self.clock())
        self._snapshots[domain] = snapshot
        self._invalidated.discard(domain)
        self._stale.discard(domain)
        self._failed_at.pop(domain, None)
        log.info("catalog.refresh.completed", tools=len(snapshot))
        return snapshot

    def _fail(self, domain: Domain, exc: Exception) -> CatalogSnapshot:
        prior = self._snapshots.get(domain)
        if prior is None:
            logger.error("catalog.refresh.failed", domain=str(domain), error=str(exc))
            raise DiscoveryFailed(domain, str(exc)) from exc
        self._stale.add(domain)
        self._failed_at[domain] = self.clock()
        logger.warning(
            "catalog.refresh.stale_served",
            domain=str(domain),
            error=str(exc),
            fetched_at=prior.fetched_at.isoformat(),
            retry_after=self.retry_after,
        )
        return prior


__all__ = ["ToolCatalog", "ToolProvider"]
