"""Scope-keyed analytics fetches with stale-result suppression.

Every call to ``on_key_change`` starts a new generation. A response (or an
error) is applied to the output state only while its generation is still
the live one, so for a burst of key changes A -> B -> C only C's outcome is
ever rendered. Superseded requests are not aborted; their results are
dropped when they arrive.
"""
import asyncio
import logging
from typing import Callable, List, Optional, Set

from sanitation_scope import config
from sanitation_scope.clients.api import AnalyticsProvider
from sanitation_scope.models.geography import FetchKey, FetchState, FetchStatus, ProviderResult

logger = logging.getLogger(__name__)

StateListener = Callable[[FetchState], None]
ScopeDescriber = Callable[[FetchKey], str]


def _default_describer(key: FetchKey) -> str:
    if key.geography_id is None:
        return key.tier.label
    return f"{key.tier.label} {key.geography_id}"


class FetchController:
    def __init__(
        self,
        provider: AnalyticsProvider,
        timeout: Optional[float] = None,
        describe: Optional[ScopeDescriber] = None,
    ):
        self._provider = provider
        self.timeout = config.FETCH_TIMEOUT_SECONDS if timeout is None else timeout
        self._describe = describe or _default_describer
        self._generation = 0
        self._key: Optional[FetchKey] = None
        self._tasks: Set[asyncio.Task] = set()
        self._listeners: List[StateListener] = []
        self.state = FetchState()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def key(self) -> Optional[FetchKey]:
        return self._key

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return _unsubscribe

    def _publish(self, state: FetchState) -> None:
        self.state = state
        for listener in list(self._listeners):
            listener(state)

    def on_key_change(self, key: Optional[FetchKey]) -> Optional[asyncio.Task]:
        """Start a new generation for ``key``; returns the request task.

        ``None`` means "waiting for a location": output is cleared and
        nothing is fetched.
        """
        self._generation += 1
        generation = self._generation
        self._key = key

        if key is None:
            logger.info(f"Generation {generation}: waiting for location selection")
            self._publish(FetchState(status=FetchStatus.WAITING, generation=generation))
            return None

        scope_label = self._describe(key)
        logger.info(f"Generation {generation}: fetching {key.tier.value} analytics for {scope_label} (fy {key.fiscal_year_id})")
        self._publish(FetchState(
            status=FetchStatus.LOADING,
            key=key,
            generation=generation,
            scope_label=scope_label,
        ))
        task = asyncio.ensure_future(self._run(generation, key, scope_label))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def retry(self) -> Optional[asyncio.Task]:
        """Re-issue the current key under a fresh generation."""
        return self.on_key_change(self._key)

    def is_live(self, generation: int) -> bool:
        return generation == self._generation

    async def _request(self, key: FetchKey) -> ProviderResult:
        try:
            return await self._provider.get_coverage(key.tier, key.geography_id, key.fiscal_year_id)
        except Exception as e:
            # anything a provider raises is treated like a reported error
            logger.error(f"Analytics provider raised for {key}: {str(e)}")
            return ProviderResult(error=str(e) or e.__class__.__name__)

    async def _run(self, generation: int, key: FetchKey, scope_label: str) -> None:
        try:
            if self.timeout:
                result = await asyncio.wait_for(self._request(key), timeout=self.timeout)
            else:
                result = await self._request(key)
        except asyncio.TimeoutError:
            if not self.is_live(generation):
                return
            logger.warning(f"Generation {generation}: {scope_label} timed out after {self.timeout}s")
            self._publish(FetchState(
                status=FetchStatus.ERROR,
                key=key,
                error=f"Loading {scope_label} took too long",
                generation=generation,
                scope_label=scope_label,
                can_retry=True,
            ))
            return

        if not self.is_live(generation):
            logger.info(f"Generation {generation}: discarding stale result for {scope_label}")
            return

        if not result.ok:
            logger.error(f"Generation {generation}: failed to load {scope_label}: {result.error}")
            self._publish(FetchState(
                status=FetchStatus.ERROR,
                key=key,
                error=f"Could not load data for {scope_label}: {result.error}",
                generation=generation,
                scope_label=scope_label,
                can_retry=True,
            ))
            return

        self._publish(FetchState(
            status=FetchStatus.READY,
            key=key,
            data=result.data,
            generation=generation,
            scope_label=scope_label,
        ))

    async def wait_idle(self) -> None:
        """Wait for every outstanding request (live or stale) to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Abandon outstanding requests when the view goes away."""
        self._generation += 1
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()
