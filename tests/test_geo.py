"""Tests for the Google Maps adapter using ``httpx.MockTransport``."""

import httpx
import pytest

from carpool.domain.entities import Coordinates
from carpool.domain.errors import RouteResolutionError, UpstreamDependencyError
from carpool.infrastructure.geo import GoogleMapsClient


def maps_client(handler, test_settings) -> GoogleMapsClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleMapsClient(http, test_settings)


class TestGeocoding:
    @pytest.mark.asyncio
    async def test_resolve_location(self, test_settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(
                200,
                json={
                    "status": "OK",
                    "results": [{"geometry": {"location": {"lat": 5.6037, "lng": -0.187}}}],
                },
            )

        coord = await maps_client(handler, test_settings).resolve_location("Accra")
        assert coord == Coordinates(lat=5.6037, lng=-0.187)
        assert seen["path"].endswith("/geocode/json")
        assert seen["params"] == {"address": "Accra", "key": "test-key"}

    @pytest.mark.asyncio
    async def test_zero_results_is_not_retryable(self, test_settings):
        def handler(request):
            return httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []})

        with pytest.raises(RouteResolutionError) as exc:
            await maps_client(handler, test_settings).resolve_location("Atlantis")
        assert not exc.value.retryable
        assert exc.value.extra["maps_status"] == "ZERO_RESULTS"

    @pytest.mark.asyncio
    async def test_quota_error_is_retryable(self, test_settings):
        def handler(request):
            return httpx.Response(200, json={"status": "OVER_QUERY_LIMIT"})

        with pytest.raises(UpstreamDependencyError) as exc:
            await maps_client(handler, test_settings).resolve_location("Accra")
        assert exc.value.retryable

    @pytest.mark.asyncio
    async def test_http_error_is_upstream(self, test_settings):
        def handler(request):
            return httpx.Response(503)

        with pytest.raises(UpstreamDependencyError):
            await maps_client(handler, test_settings).resolve_location("Accra")

    @pytest.mark.asyncio
    async def test_transport_error_is_upstream(self, test_settings):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(UpstreamDependencyError):
            await maps_client(handler, test_settings).resolve_location("Accra")

    @pytest.mark.asyncio
    async def test_reverse_geocode(self, test_settings):
        def handler(request):
            assert request.url.params["latlng"] == "5.6,-0.19"
            return httpx.Response(
                200,
                json={"status": "OK", "results": [{"formatted_address": "Ring Rd, Accra"}]},
            )

        address = await maps_client(handler, test_settings).reverse_geocode(
            Coordinates(lat=5.6, lng=-0.19)
        )
        assert address == "Ring Rd, Accra"


class TestDistanceMatrix:
    @pytest.mark.asyncio
    async def test_estimate_route(self, test_settings):
        def handler(request):
            assert request.url.path.endswith("/distancematrix/json")
            return httpx.Response(
                200,
                json={
                    "status": "OK",
                    "rows": [
                        {
                            "elements": [
                                {
                                    "status": "OK",
                                    "distance": {"value": 248000, "text": "248 km"},
                                    "duration": {"value": 16200, "text": "4 hours 30 mins"},
                                }
                            ]
                        }
                    ],
                },
            )

        route = await maps_client(handler, test_settings).estimate_route(
            Coordinates(5.6037, -0.187), Coordinates(6.6885, -1.6244)
        )
        assert route.distance_km == 248.0
        assert route.distance_label == "248 km"
        assert route.duration_label == "4 hours 30 mins"

    @pytest.mark.asyncio
    async def test_unroutable_element(self, test_settings):
        def handler(request):
            return httpx.Response(
                200,
                json={"status": "OK", "rows": [{"elements": [{"status": "ZERO_RESULTS"}]}]},
            )

        with pytest.raises(RouteResolutionError):
            await maps_client(handler, test_settings).estimate_route(
                Coordinates(5.6, -0.19), Coordinates(0.0, 0.0)
            )
