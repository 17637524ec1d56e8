"""
Google Maps adapter: geocoding, reverse geocoding and route estimates.

Sole responsibility: talk to the Maps HTTP APIs and return domain value
objects.  Transport failures and throttling surface as
``UpstreamDependencyError`` (retryable); a well-formed "nothing found"
answer surfaces as ``RouteResolutionError`` (not retryable).
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from carpool.config import Settings, settings as default_settings
from carpool.domain.entities import Coordinates, RouteEstimate
from carpool.domain.errors import RouteResolutionError, UpstreamDependencyError

logger = logging.getLogger(__name__)

# Statuses meaning "the request was fine, there is simply no answer"
_NO_RESULT_STATUSES = {"ZERO_RESULTS", "NOT_FOUND", "INVALID_REQUEST"}


def _latlng(coord: Coordinates) -> str:
    return f"{coord.lat},{coord.lng}"


class GoogleMapsClient:
    def __init__(self, client: httpx.AsyncClient, cfg: Settings = default_settings):
        self.client = client
        self.api_key = cfg.google_maps_api_key
        self.base_url = cfg.google_maps_base_url.rstrip("/")

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = await self.client.get(
                f"{self.base_url}{path}", params={**params, "key": self.api_key}
            )
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPError as exc:
            logger.warning("Maps request %s failed: %s", path, exc)
            raise UpstreamDependencyError("Maps service is unavailable.") from exc
        except ValueError as exc:
            raise UpstreamDependencyError("Maps service returned an unreadable response.") from exc

    @staticmethod
    def _check_status(status: str | None, message: str) -> None:
        if status == "OK":
            return
        if status in _NO_RESULT_STATUSES:
            raise RouteResolutionError(message, maps_status=status)
        raise UpstreamDependencyError(f"Maps service error: {status}", maps_status=status)

    async def resolve_location(self, label: str) -> Coordinates:
        data = await self._get("/geocode/json", {"address": label})
        self._check_status(
            data.get("status"), f'Failed to find location for "{label}".'
        )
        results = data.get("results") or []
        if not results:
            raise RouteResolutionError(f'Failed to find location for "{label}".')
        location = results[0]["geometry"]["location"]
        return Coordinates(lat=float(location["lat"]), lng=float(location["lng"]))

    async def estimate_route(
        self, origin: Coordinates, destination: Coordinates
    ) -> RouteEstimate:
        data = await self._get(
            "/distancematrix/json",
            {"origins": _latlng(origin), "destinations": _latlng(destination)},
        )
        self._check_status(data.get("status"), "Could not resolve a route.")
        try:
            element = data["rows"][0]["elements"][0]
        except (KeyError, IndexError) as exc:
            raise RouteResolutionError("Could not resolve a route.") from exc
        self._check_status(element.get("status"), "Could not resolve a route.")
        return RouteEstimate(
            distance_meters=int(element["distance"]["value"]),
            duration_seconds=int(element["duration"]["value"]),
            distance_label=element["distance"]["text"],
            duration_label=element["duration"]["text"],
        )

    async def reverse_geocode(self, coord: Coordinates) -> str:
        data = await self._get("/geocode/json", {"latlng": _latlng(coord)})
        self._check_status(
            data.get("status"), "Failed to find address for the given coordinates."
        )
        results = data.get("results") or []
        if not results:
            raise RouteResolutionError("Failed to find address for the given coordinates.")
        return results[0]["formatted_address"]


def build_http_client(cfg: Settings = default_settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=cfg.geo_timeout_seconds)
