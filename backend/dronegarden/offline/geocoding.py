"""Address geocoding for the admin jobs map.

`NominatimGeocoder` resolves one free-form address to coordinates and
memoizes the answer per address, misses included, so a location that
failed once is not queried again for the life of the geocoder.
`GeocodingBatcher` places a list of service requests on the map: it
geocodes them in small concurrent batches with a pause between batches
to stay inside Nominatim's usage policy.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional

import httpx

logger = logging.getLogger("dronegarden.offline.geocoding")

NOMINATIM_BASE_URL = "https://nominatim.openstreetmap.org"
USER_AGENT = "DroneAgri-Panel/1.0"
BATCH_SIZE = 3
BATCH_DELAY_SECONDS = 0.15


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


class NominatimGeocoder:
    def __init__(
        self,
        base_url: str = NOMINATIM_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        user_agent: str = USER_AGENT,
        timeout: float = 10.0,
    ):
        self._http = httpx.AsyncClient(
            base_url=base_url,
            transport=transport,
            timeout=timeout,
            headers={"User-Agent": user_agent},
        )
        self._memo: dict[str, Optional[Coordinates]] = {}

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "NominatimGeocoder":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def cached(self, address: str) -> bool:
        return address in self._memo

    async def geocode(self, address: str) -> Optional[Coordinates]:
        """Coordinates of the best match for `address`, or None.

        Never raises: HTTP failures and unusable answers are remembered
        as misses.
        """
        if address in self._memo:
            return self._memo[address]
        result = None
        try:
            resp = await self._http.get("/search", params={"format": "json", "q": address, "limit": 1})
            resp.raise_for_status()
            data = resp.json()
            if isinstance(data, list) and data:
                result = Coordinates(lat=float(data[0]["lat"]), lng=float(data[0]["lon"]))
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            logger.warning("geocoding %r failed: %s", address, exc)
        self._memo[address] = result
        return result


Sleep = Callable[[float], Awaitable[None]]


class GeocodingBatcher:
    def __init__(
        self,
        geocoder: NominatimGeocoder,
        batch_size: int = BATCH_SIZE,
        delay_seconds: float = BATCH_DELAY_SECONDS,
        sleep: Sleep = asyncio.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.geocoder = geocoder
        self.batch_size = batch_size
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    async def _locate(self, request: dict) -> Optional[dict]:
        location = (request.get("location") or "").strip()
        if not location:
            return None
        coords = await self.geocoder.geocode(location)
        if coords is None:
            return None
        return {**request, "lat": coords.lat, "lng": coords.lng}

    async def geocode_requests(self, requests: Iterable[dict]) -> list[dict]:
        """Service requests that could be placed, with `lat`/`lng` added.

        Order follows the input; requests without a location or whose
        address did not resolve are left out.
        """
        pending = list(requests)
        placed: list[dict] = []
        for start in range(0, len(pending), self.batch_size):
            batch = pending[start:start + self.batch_size]
            results = await asyncio.gather(*(self._locate(r) for r in batch))
            placed.extend(r for r in results if r is not None)
            if start + self.batch_size < len(pending):
                await self._sleep(self.delay_seconds)
        logger.debug("placed %d of %d requests on the map", len(placed), len(pending))
        return placed
