"""Loading the schedule snapshot and keeping one built index per schedule version."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

import httpx
import pandas as pd

from journeyplanner.gtfs_parser import load_gtfs_directory
from journeyplanner.models import ScheduleStatus
from journeyplanner.schedule_index import ScheduleIndex, ScheduleSnapshot

logger = logging.getLogger("journeyplanner.provider")

# table name -> endpoint path on the schedule provider
TABLE_ENDPOINTS = {
    "stops": "/stops",
    "routes": "/routes",
    "trips": "/trips-static",
    "stop_times": "/stop-times",
}


class ScheduleUnavailable(Exception):
    """The schedule provider could not deliver a snapshot."""


class ScheduleFetchTimeout(ScheduleUnavailable):
    """The snapshot fetch did not finish within the request timeout."""


class ScheduleProvider:
    """Fetches the four schedule tables concurrently from an HTTP provider.

    Each endpoint returns either a JSON array or an envelope {"data": [...]}.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 60.0,
        operator_id: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.operator_id = operator_id
        self._client = http_client

    def _headers(self) -> dict:
        if not self.api_key:
            return {}
        return {"Authorization": f"Bearer {self.api_key}", "apikey": self.api_key}

    async def _fetch_table(self, client: httpx.AsyncClient, name: str) -> pd.DataFrame:
        params = {"operator": self.operator_id} if self.operator_id else None
        resp = await client.get(f"{self.base_url}{TABLE_ENDPOINTS[name]}", params=params, headers=self._headers())
        resp.raise_for_status()
        try:
            payload = resp.json()
        except ValueError as e:
            raise ScheduleUnavailable(f"{name}: response is not JSON") from e

        rows = payload.get("data") if isinstance(payload, dict) else payload
        if not isinstance(rows, list):
            raise ScheduleUnavailable(f"{name}: expected an array of rows")
        logger.info(f"Fetched {name}: {len(rows)} rows")
        return pd.DataFrame(rows)

    async def _fetch_tables(self, client: httpx.AsyncClient, names: list[str]) -> list[pd.DataFrame]:
        """Fetch all tables as one unit: if any request fails, the rest are cancelled and joined."""
        tasks = [asyncio.create_task(self._fetch_table(client, name)) for name in names]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def fetch_snapshot(self) -> ScheduleSnapshot:
        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        names = list(TABLE_ENDPOINTS)
        try:
            tables = await asyncio.wait_for(self._fetch_tables(client, names), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"Schedule fetch timed out after {self.timeout}s")
            raise ScheduleFetchTimeout(f"Schedule fetch timed out after {self.timeout}s") from e
        except httpx.TimeoutException as e:
            logger.warning(f"Schedule provider request timed out: {e}")
            raise ScheduleFetchTimeout(f"Schedule provider request timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"Schedule fetch failed: {e}")
            raise ScheduleUnavailable(f"Schedule fetch failed: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()

        return ScheduleSnapshot.from_frames(dict(zip(names, tables)))


def load_local_schedule(path: str) -> ScheduleSnapshot:
    """Snapshot from a GTFS directory on disk."""
    try:
        frames = load_gtfs_directory(path)
    except (OSError, ValueError) as e:
        raise ScheduleUnavailable(f"Could not read GTFS data from {path}: {e}") from e
    return ScheduleSnapshot.from_frames(frames)


class ScheduleStore:
    """Owns the current ScheduleIndex and rebuilds it when it goes stale.

    The index is built once per schedule version and handed out by
    reference. A failed refresh raises ScheduleUnavailable instead of quietly
    serving the old index; the last good one stays readable as `current` for
    callers that choose to show it. The failure itself is kept for
    `retry_after_seconds`, so callers queued behind a failing load get the
    same error instead of each fetching again. `reset()` drops everything.
    """

    def __init__(
        self,
        loader: Callable[[], Awaitable[ScheduleSnapshot]],
        ttl_seconds: Optional[float] = 3600.0,
        clock: Callable[[], float] = time.monotonic,
        retry_after_seconds: float = 5.0,
    ):
        self._loader = loader
        self.ttl_seconds = ttl_seconds
        self.retry_after_seconds = retry_after_seconds
        self._clock = clock
        self._lock = asyncio.Lock()
        self._index: Optional[ScheduleIndex] = None
        self._loaded_at: Optional[float] = None
        self._failure: Optional[ScheduleUnavailable] = None
        self._failed_at: Optional[float] = None
        self.version = 0
        self.last_error: Optional[str] = None

    @property
    def current(self) -> Optional[ScheduleIndex]:
        return self._index

    def is_fresh(self) -> bool:
        if self._index is None or self._loaded_at is None:
            return False
        if self.ttl_seconds is None:
            return True
        return self._clock() - self._loaded_at < self.ttl_seconds

    def _recent_failure(self) -> Optional[ScheduleUnavailable]:
        if self._failure is None or self._failed_at is None:
            return None
        if self._clock() - self._failed_at >= self.retry_after_seconds:
            return None
        return self._failure

    async def get_index(self) -> ScheduleIndex:
        if self.is_fresh():
            return self._index
        async with self._lock:
            # another caller may have refreshed, or failed, while we waited
            if self.is_fresh():
                return self._index
            failure = self._recent_failure()
            if failure is not None:
                raise type(failure)(str(failure)) from failure
            return await self._refresh()

    async def refresh(self) -> ScheduleIndex:
        async with self._lock:
            return await self._refresh()

    async def _refresh(self) -> ScheduleIndex:
        try:
            snapshot = await self._loader()
        except ScheduleUnavailable as e:
            self.last_error = str(e)
            self._failure = e
            self._failed_at = self._clock()
            raise

        index = await asyncio.to_thread(ScheduleIndex.build, snapshot)
        self._index = index
        self._loaded_at = self._clock()
        self._failure = None
        self._failed_at = None
        self.version += 1
        self.last_error = None
        logger.info(f"Schedule version {self.version} ready: {index.stats}")
        return index

    def reset(self):
        self._index = None
        self._loaded_at = None
        self._failure = None
        self._failed_at = None
        self.last_error = None

    def status(self) -> ScheduleStatus:
        if self._index is None:
            return ScheduleStatus(loaded=False, version=self.version)
        return ScheduleStatus(loaded=True, version=self.version, loaded_at=self._loaded_at, **self._index.stats)
