"""Async Nightscout REST client — latest reading, history, treatments, telemetry."""

from __future__ import annotations

import datetime
import hashlib
import time
from types import TracebackType
from typing import Any

import httpx
import structlog

from sugarwatch.core.config import NightscoutConfig, get_settings
from sugarwatch.core.types import Reading, TreatmentEvent, TrendDirection
from sugarwatch.nightscout.device_status import DeviceStatus, parse_iso_timestamp
from sugarwatch.nightscout.exceptions import (
    AuthenticationRejectedError,
    EmptyResultError,
    FetchTimeoutError,
    HttpStatusError,
    MalformedPayloadError,
    NetworkUnavailableError,
)
from sugarwatch.nightscout.profile import Profile, parse_profile

logger = structlog.stdlib.get_logger()

# Nightscout uploads one entry every 5 minutes.
ENTRIES_PER_HOUR = 12


def hash_api_secret(secret: str) -> str:
    """SHA-1 hex digest sent in the ``api-secret`` header."""
    return hashlib.sha1(secret.encode("utf-8")).hexdigest()


def _parse_entry(raw: Any) -> Reading:
    """Convert one ``entries.json`` element into a Reading.

    Expected structure::

        {"sgv": 120, "date": 1700000000000.0, "direction": "Flat", "delta": -1.5}
    """
    if not isinstance(raw, dict):
        raise MalformedPayloadError("entry is not an object")
    sgv = raw.get("sgv")
    date_ms = raw.get("date")
    if isinstance(sgv, bool) or not isinstance(sgv, (int, float)):
        raise MalformedPayloadError("entry has no numeric sgv")
    if isinstance(date_ms, bool) or not isinstance(date_ms, (int, float)):
        raise MalformedPayloadError("entry has no numeric date")
    delta = raw.get("delta")
    if isinstance(delta, bool) or not isinstance(delta, (int, float)):
        delta = None
    return Reading(
        value=int(sgv),
        trend=TrendDirection.parse(raw.get("direction")),
        timestamp=float(date_ms) / 1000.0,
        delta=float(delta) if delta is not None else None,
    )


def _parse_treatment(raw: Any) -> TreatmentEvent | None:
    """Convert one ``treatments.json`` element; None if it has no usable time."""
    if not isinstance(raw, dict):
        return None
    created_at = parse_iso_timestamp(raw.get("created_at"))
    if created_at is None:
        mills = raw.get("mills")
        if isinstance(mills, (int, float)) and not isinstance(mills, bool):
            created_at = float(mills) / 1000.0
    if created_at is None:
        return None

    def _num(key: str) -> float | None:
        value = raw.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)

    return TreatmentEvent(
        created_at=created_at,
        event_type=str(raw.get("eventType") or ""),
        insulin=_num("insulin"),
        carbs=_num("carbs"),
        rate=_num("rate"),
        duration=_num("duration"),
        raw=dict(raw),
    )


class NightscoutClient:
    """Authenticated read-only access to a Nightscout server.

    The API secret is hashed once at construction; only the digest is kept.

    Usage::

        client = NightscoutClient(config)
        async with client:
            reading = await client.fetch_latest()
    """

    def __init__(
        self,
        config: NightscoutConfig | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        cfg = config or get_settings().nightscout
        self._base_url = cfg.base_url
        self._timeout_secs = cfg.timeout_secs
        self._latest_count = cfg.latest_count
        self._headers = {
            "api-secret": hash_api_secret(cfg.api_secret.get_secret_value()),
            "Accept": "application/json",
        }
        self._http = http
        self._owns_http = http is None

    @property
    def connected(self) -> bool:
        """Whether the HTTP client is active."""
        return self._http is not None and not self._http.is_closed

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    async def connect(self) -> None:
        """Create the httpx async client."""
        if self.connected:
            return
        self._http = httpx.AsyncClient(
            headers=self._headers,
            timeout=httpx.Timeout(self._timeout_secs),
        )
        self._owns_http = True

    async def close(self) -> None:
        """Close the httpx async client."""
        if self._http is not None and self._owns_http:
            await self._http.aclose()
        self._http = None

    async def __aenter__(self) -> NightscoutClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ── Transport ────────────────────────────────────────────────

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET ``path`` and decode the JSON body, normalising every failure."""
        if self._http is None:
            raise NetworkUnavailableError("HTTP client not connected")

        started = time.monotonic()
        try:
            response = await self._http.get(
                f"{self._base_url}{path}", params=params, headers=self._headers,
            )
        except httpx.TimeoutException as exc:
            raise FetchTimeoutError(f"Nightscout request timed out: {path}") from exc
        except httpx.HTTPError as exc:
            raise NetworkUnavailableError(f"Nightscout request failed for {path}: {exc}") from exc

        logger.debug(
            "nightscout_response",
            path=path,
            status=response.status_code,
            elapsed_ms=round((time.monotonic() - started) * 1000, 1),
        )

        if response.status_code == 401:
            raise AuthenticationRejectedError()
        if response.status_code != 200:
            raise HttpStatusError(response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            logger.warning("nightscout_decode_error", path=path, body=response.text[:500])
            raise MalformedPayloadError(f"Nightscout returned invalid JSON for {path}") from exc

    # ── Glucose ──────────────────────────────────────────────────

    async def fetch_latest(self) -> Reading:
        """Return the newest sensor reading."""
        body = await self._get_json(
            "/api/v1/entries.json", params={"count": self._latest_count},
        )
        if not isinstance(body, list):
            raise MalformedPayloadError("entries.json returned non-array")
        if not body:
            raise EmptyResultError("entries.json returned no entries")
        reading = _parse_entry(body[0])
        logger.info(
            "nightscout_latest",
            value=reading.value,
            trend=reading.trend.value,
            delta=reading.delta,
            entries=len(body),
        )
        return reading

    async def fetch_history(self, hours: int = 3) -> list[Reading]:
        """Return readings for the last ``hours`` hours, newest first.

        Malformed entries are skipped; an empty result is an error.
        """
        count = hours * ENTRIES_PER_HOUR
        body = await self._get_json("/api/v1/entries.json", params={"count": count})
        if not isinstance(body, list):
            raise MalformedPayloadError("entries.json returned non-array")

        readings: list[Reading] = []
        for raw in body:
            try:
                readings.append(_parse_entry(raw))
            except MalformedPayloadError:
                continue
        if not readings:
            raise EmptyResultError("entries.json returned no usable entries")

        span_hours = (readings[0].timestamp - readings[-1].timestamp) / 3600
        logger.info("nightscout_history", count=len(readings), span_hours=round(span_hours, 1))
        return readings

    # ── Treatments ───────────────────────────────────────────────

    async def fetch_events(self, hours: int = 6) -> list[TreatmentEvent]:
        """Return treatments created in the last ``hours`` hours."""
        start = datetime.datetime.now(datetime.UTC) - datetime.timedelta(hours=hours)
        start_iso = start.strftime("%Y-%m-%dT%H:%M:%SZ")
        body = await self._get_json(
            "/api/v1/treatments.json",
            params={"find[created_at][$gte]": start_iso},
        )
        if not isinstance(body, list):
            raise MalformedPayloadError("treatments.json returned non-array")

        events: list[TreatmentEvent] = []
        for raw in body:
            event = _parse_treatment(raw)
            if event is not None:
                events.append(event)
        logger.info("nightscout_treatments", count=len(events), hours=hours)
        return events

    # ── Telemetry ────────────────────────────────────────────────

    async def fetch_device_status(self) -> DeviceStatus:
        """Return the newest devicestatus record.

        An empty or undecodable body yields an empty DeviceStatus rather than
        an error, since many uploaders never send one.
        """
        try:
            body = await self._get_json("/api/v1/devicestatus.json", params={"count": 1})
        except MalformedPayloadError:
            return DeviceStatus()
        if isinstance(body, list):
            body = body[0] if body else {}
        status = DeviceStatus(body if isinstance(body, dict) else None)
        if status.reservoir() is None or status.temp_basal_rate() is None:
            logger.debug("nightscout_device_status_partial", **status.summary())
        return status

    async def fetch_profile(self) -> Profile:
        """Return the active therapy profile record."""
        body = await self._get_json("/api/v1/profile.json")
        if isinstance(body, list):
            if not body:
                raise EmptyResultError("profile.json returned no profiles")
            body = body[0]
        if not isinstance(body, dict):
            raise MalformedPayloadError("profile.json returned non-object")
        return parse_profile(body)

    async def check_server(self) -> bool:
        """True if ``status.json`` answers 200. Never raises."""
        if self._http is None:
            return False
        try:
            response = await self._http.get(
                f"{self._base_url}/api/v1/status.json", headers=self._headers,
            )
        except httpx.HTTPError:
            logger.warning("nightscout_unavailable")
            return False
        return response.status_code == 200
