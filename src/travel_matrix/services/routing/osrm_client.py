"""HTTP client for interacting with OSRM services."""

from __future__ import annotations

import logging
from typing import Sequence

import httpx

from ...config import settings
from ...errors import BulkMatrixFailure, ConfigurationError, SnapFailure
from ...models.domain import MatrixResult
from .matrix import convert_table, force_zero_diagonal, meters_to_km, seconds_to_minutes

logger = logging.getLogger(__name__)


class OSRMClient:
    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = (base_url or settings.osrm_base_url or "").rstrip("/")
        if not self.base_url:
            raise ConfigurationError("OSRM base URL is not configured.")
        self.profile = profile or settings.osrm_profile
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self._client = client or httpx.Client(timeout=httpx.Timeout(self.timeout, connect=10.0))

    def close(self) -> None:
        self._client.close()

    def nearest(self, lat: float, lng: float) -> dict:
        """Snap one point to the closest road. Single attempt; raises ``SnapFailure``.

        Returns the first waypoint: ``{"location": [lon, lat], "name": str}``.
        """
        url = f"{self.base_url}/nearest/v1/{self.profile}/{lng},{lat}"
        try:
            response = self._client.get(url, params={"number": 1})
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise SnapFailure(f"network error: {exc}") from exc

        if data.get("code") != "Ok" or not data.get("waypoints"):
            raise SnapFailure(f"service answered {data.get('code', response.status_code)}")
        waypoint = data["waypoints"][0]
        location = waypoint.get("location")
        if not location or len(location) != 2:
            raise SnapFailure("waypoint without location")
        return waypoint

    def _table_request(self, coordinates: Sequence[tuple[float, float]]) -> dict:
        coordinate_str = ";".join(f"{lon},{lat}" for lat, lon in coordinates)
        url = f"{self.base_url}/table/v1/{self.profile}/{coordinate_str}"
        params = {"annotations": "duration,distance"}

        try:
            response = self._client.get(url, params=params)
            return response.json()
        except httpx.TimeoutException as exc:
            raise BulkMatrixFailure(f"OSRM table request timed out after {self.timeout}s") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise BulkMatrixFailure(f"OSRM table request to {self.base_url} failed: {exc}") from exc

    def table(self, coordinates: Sequence[tuple[float, float]]) -> MatrixResult:
        """Full N×N matrix in one call, converted to minutes and kilometres.

        Any non-``Ok`` answer is fatal: a partially filled matrix is never returned.
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for OSRM table.")

        logger.debug(f"OSRM table request for {len(coordinates)} points")
        data = self._table_request(coordinates)
        if not isinstance(data, dict):
            raise BulkMatrixFailure("OSRM table response is not a JSON object.")
        if data.get("code") != "Ok":
            raise BulkMatrixFailure(f"OSRM table error: {data.get('code')} - {data.get('message', '')}")

        size = len(coordinates)
        durations = data.get("durations")
        distances = data.get("distances")
        for name, rows in (("durations", durations), ("distances", distances)):
            if not isinstance(rows, list) or len(rows) != size or any(len(row) != size for row in rows):
                raise BulkMatrixFailure(f"OSRM table response has malformed {name} (expected {size}x{size}).")

        return MatrixResult(
            durations=force_zero_diagonal(convert_table(durations, seconds_to_minutes)),
            distances=force_zero_diagonal(convert_table(distances, meters_to_km)),
        )


def check_health(base_url: str | None = None) -> bool:
    """Check OSRM service health by making a simple table request.

    Public OSRM endpoints may not have a /health endpoint, so we test
    connectivity by making a minimal table request with two coordinates.
    """
    base = base_url or settings.osrm_base_url
    if not base:
        return False
    try:
        # Two points in central Kinshasa
        test_coords = "15.3136,-4.3217;15.2663,-4.3317"
        url = f"{base.rstrip('/')}/table/v1/{settings.osrm_profile}/{test_coords}"
        response = httpx.get(url, params={"annotations": "duration"}, timeout=5.0)
        response.raise_for_status()
        data = response.json()
        return data.get("code") == "Ok" and isinstance(data.get("durations"), list)
    except (httpx.HTTPError, ValueError):
        return False
