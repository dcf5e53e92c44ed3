"""
Encroachment Auditor — Telemetry Client
========================================
Acquires an OAuth2 client-credentials token and pulls statistical band
summaries (mean value over a ~10 m box) from the Sentinel Hub Statistical
API for one sensor modality at a time.

Design:
    * :class:`Credential` — immutable access token + absolute expiry.
    * :class:`CredentialCache` — one credential per client, refreshed lazily
      behind a single-flight lock so bursts of concurrent audits trigger at
      most one token exchange.
    * :class:`SensorReading` — immutable scalar summary for one sensor.
      ``confidence == 0`` marks a degraded (fallback) reading.
    * :class:`TelemetryClient` — builds the aggregation request, extracts
      the mean, and degrades to a fixed per-sensor fallback scalar on any
      failure once a credential was obtained.

Failure semantics::

    no credential at all           → AuthenticationError (hard)
    HTTP / transport / timeout     → fallback value, confidence 0, "API Error"
    no usable band (cloud, empty)  → fallback value, confidence 0

Typical use::

    client = TelemetryClient(client_id="...", client_secret="...")
    reading = client.get_reading(28.545, 77.300, SensorKind.OPTICAL)
    print(reading.value, reading.unit, reading.confidence)
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable

import requests

from shared.python.exceptions import (
    AuthenticationError,
    DegradedSignalError,
    InputValidationError,
)

from encroachment_auditor.config import (
    DEFAULT_STATS_URL,
    DEFAULT_TOKEN_URL,
    AuditorSettings,
    is_placeholder,
)

logger = logging.getLogger("geoaudit.encroachment_auditor.telemetry")

PROVIDER_NAME = "Sentinel Hub"

# ~10 m half-width at the equator
BBOX_HALF_WIDTH_DEG = 0.0001
# Revisit gaps and cloud cover: search the last 15 days for a usable pass
LOOKBACK_DAYS = 15
# Refresh a token this long before it actually expires
TOKEN_SAFETY_MARGIN_S = 5.0

EPSG_4326_URI = "http://www.opengis.net/def/crs/EPSG/0/4326"

EVALSCRIPT_NDVI = """
//VERSION=3
function setup() {
  return {
    input: ["B04", "B08", "dataMask"],
    output: [
      { id: "default", bands: 1, sampleType: "FLOAT32" },
      { id: "dataMask", bands: 1 }
    ]
  };
}
function evaluatePixel(sample) {
  let ndvi = (sample.B08 - sample.B04) / (sample.B08 + sample.B04);
  return {
    default: [ndvi],
    dataMask: [sample.dataMask]
  };
}
"""

EVALSCRIPT_SAR = """
//VERSION=3
function setup() {
  return {
    input: ["VV", "dataMask"],
    output: [
      { id: "default", bands: 1, sampleType: "FLOAT32" },
      { id: "dataMask", bands: 1 }
    ]
  };
}
function evaluatePixel(sample) {
  return {
    default: [10 * Math.log10(Math.max(sample.VV, 0.0001))],
    dataMask: [sample.dataMask]
  };
}
"""


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(tz=timezone.utc)


def to_iso(moment: datetime) -> str:
    """Render *moment* as ISO-8601 UTC with millisecond precision and ``Z``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def from_iso(value: str) -> datetime:
    """Inverse of :func:`to_iso` (also accepts ``+00:00`` offsets)."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Sensor kinds
# ---------------------------------------------------------------------------


class SensorKind(Enum):
    """Sensor modality of a reading."""

    OPTICAL = "OPTICAL"
    SAR = "SAR"

    @classmethod
    def parse(cls, value: "SensorKind | str") -> "SensorKind":
        """Accept a member or its name, case-insensitively."""
        if isinstance(value, SensorKind):
            return value
        try:
            return cls(str(value).upper())
        except ValueError as exc:
            raise InputValidationError(
                f"Unknown sensor kind {value!r}; expected OPTICAL or SAR"
            ) from exc

    @property
    def unit(self) -> str:
        return "NDVI" if self is SensorKind.OPTICAL else "dB"

    @property
    def collection(self) -> str:
        return "sentinel-2-l2a" if self is SensorKind.OPTICAL else "sentinel-1-grd"

    @property
    def evalscript(self) -> str:
        return EVALSCRIPT_NDVI if self is SensorKind.OPTICAL else EVALSCRIPT_SAR

    @property
    def live_label(self) -> str:
        if self is SensorKind.OPTICAL:
            return "SENTINEL-2 L2A (Live Stats)"
        return "SENTINEL-1 GRD (Live Stats)"


# Scalars substituted when the service answered but no band survived
# (cloud-obscured, empty aggregation).  Chosen as "no change" baselines.
NO_SIGNAL_FALLBACK: dict[SensorKind, float] = {
    SensorKind.OPTICAL: 0.3,
    SensorKind.SAR: -15.0,
}

# Scalars substituted when the request itself failed.
ERROR_FALLBACK: dict[SensorKind, float] = {
    SensorKind.OPTICAL: 0.1,
    SensorKind.SAR: -20.0,
}


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Credential:
    """Bearer token issued by the client-credentials exchange.

    Attributes:
        access_token: Opaque bearer token string.
        expires_at: Absolute expiry as a POSIX timestamp (seconds).
    """

    access_token: str
    expires_at: float

    def is_fresh(self, now: float, safety_margin_s: float = TOKEN_SAFETY_MARGIN_S) -> bool:
        """``True`` while ``now < expires_at - safety_margin_s``."""
        return now < self.expires_at - safety_margin_s

    def __repr__(self) -> str:  # never leak the token into logs
        return f"Credential(access_token='***', expires_at={self.expires_at!r})"


@dataclass(frozen=True)
class SensorReading:
    """Scalar band summary for one sensor at one point.

    Attributes:
        reading_id: Identifier of this acquisition attempt.
        sensor_kind: :class:`SensorKind` of the reading.
        value: Mean band value over the sampled box (NDVI or dB).
        unit: ``"NDVI"`` or ``"dB"``.
        timestamp: ISO-8601 UTC timestamp the reading refers to.
        source_label: Provenance label; fallbacks say which fallback applied.
        confidence: ``1.0`` for live readings, ``0.0`` for fallbacks.
    """

    reading_id: str
    sensor_kind: SensorKind
    value: float
    unit: str
    timestamp: str
    source_label: str
    confidence: float

    @property
    def degraded(self) -> bool:
        """``True`` when the value is a fallback rather than a measurement."""
        return self.confidence == 0.0

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-compatible dict."""
        return {
            "id": self.reading_id,
            "sensor": self.sensor_kind.value,
            "value": self.value,
            "unit": self.unit,
            "timestamp": self.timestamp,
            "source": self.source_label,
            "confidence": self.confidence,
        }


# ---------------------------------------------------------------------------
# Credential cache
# ---------------------------------------------------------------------------


class CredentialCache:
    """Holds at most one credential and refreshes it single-flight.

    Args:
        safety_margin_s: Seconds before expiry at which a credential is
                         treated as stale.
        clock: Callable returning the current POSIX time; injectable for tests.
    """

    def __init__(
        self,
        safety_margin_s: float = TOKEN_SAFETY_MARGIN_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.safety_margin_s = safety_margin_s
        self._clock = clock
        self._credential: Credential | None = None
        self._lock = threading.Lock()

    def peek(self) -> Credential | None:
        """Return the cached credential if still fresh, else ``None``."""
        cred = self._credential
        if cred is not None and cred.is_fresh(self._clock(), self.safety_margin_s):
            return cred
        return None

    def get_or_refresh(self, refresh: Callable[[], Credential | None]) -> Credential | None:
        """Return a fresh credential, calling *refresh* at most once per expiry.

        Concurrent callers that find the cache stale queue on the lock; the
        first one refreshes, the rest re-check and reuse its result.
        """
        cred = self.peek()
        if cred is not None:
            return cred

        with self._lock:
            cred = self.peek()
            if cred is not None:
                return cred
            fresh = refresh()
            if fresh is not None:
                self._credential = fresh
            return fresh

    def clear(self) -> None:
        """Drop the cached credential (e.g. after a 401)."""
        with self._lock:
            self._credential = None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class TelemetryClient:
    """Statistical-API client for SAR backscatter and optical NDVI summaries.

    Args:
        client_id: OAuth2 client id.  ``None`` or a ``YOUR_...`` placeholder
                   means the capability is absent.
        client_secret: OAuth2 client secret.
        token_url: Client-credentials token endpoint.
        stats_url: Statistical aggregation endpoint.
        timeout: Per-request timeout in seconds; expiry counts as a failed
                 request and triggers the error fallback.
        cache: Credential cache; one per client by default.
        session: Optional pre-configured :class:`requests.Session`.
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        token_url: str = DEFAULT_TOKEN_URL,
        stats_url: str = DEFAULT_STATS_URL,
        timeout: float = 20.0,
        cache: CredentialCache | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.stats_url = stats_url
        self.timeout = timeout
        self.cache = cache or CredentialCache()
        self._session = session or requests.Session()
        self._session.headers.setdefault("Accept", "application/json")

    @classmethod
    def from_settings(cls, settings: AuditorSettings) -> "TelemetryClient":
        """Build a client from :class:`~encroachment_auditor.config.AuditorSettings`."""
        return cls(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            token_url=settings.token_url,
            stats_url=settings.stats_url,
            timeout=settings.telemetry_timeout_s,
        )

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def get_credential(self) -> Credential | None:
        """Return a cached or freshly exchanged credential.

        Returns ``None`` (never raises) when credentials are not configured
        or the exchange fails.
        """
        if is_placeholder(self.client_id):
            logger.warning("[%s] No valid API keys configured.", PROVIDER_NAME)
            return None
        return self.cache.get_or_refresh(self._exchange_credentials)

    def _exchange_credentials(self) -> Credential | None:
        """Perform the OAuth2 client-credentials exchange."""
        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id or "",
            "client_secret": self.client_secret or "",
        }
        try:
            response = self._session.post(self.token_url, data=form, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("[%s] Auth failed: %s", PROVIDER_NAME, exc)
            return None

        token = data.get("access_token")
        if not token:
            logger.error("[%s] Token response carried no access_token.", PROVIDER_NAME)
            return None

        expires_in = float(data.get("expires_in", 0))
        logger.debug("[%s] Obtained token valid for %.0fs", PROVIDER_NAME, expires_in)
        return Credential(access_token=str(token), expires_at=time.time() + expires_in)

    # ------------------------------------------------------------------
    # Readings
    # ------------------------------------------------------------------

    def get_reading(
        self,
        lat: float,
        lng: float,
        sensor_kind: SensorKind | str,
        as_of: datetime | None = None,
    ) -> SensorReading:
        """Fetch the mean band value around ``(lat, lng)`` for one sensor.

        Args:
            lat: Latitude in decimal degrees.
            lng: Longitude in decimal degrees.
            sensor_kind: ``SensorKind.OPTICAL`` (NDVI) or ``SensorKind.SAR`` (dB).
            as_of: End of the look-back window; defaults to now.

        Returns:
            A live :class:`SensorReading`, or a fallback with confidence 0.

        Raises:
            AuthenticationError: If no credential could be obtained.
        """
        kind = SensorKind.parse(sensor_kind)
        credential = self.get_credential()
        if credential is None:
            raise AuthenticationError(PROVIDER_NAME, "no usable access credential")

        end = as_of or utc_now()
        stamp = to_iso(end)
        body = self.build_request(lat, lng, kind, end)
        logger.info("[%s] Fetching %s statistics for %.5f, %.5f", PROVIDER_NAME, kind.value, lat, lng)

        try:
            response = self._session.post(
                self.stats_url,
                json=body,
                headers={"Authorization": f"Bearer {credential.access_token}"},
                timeout=self.timeout,
            )
            if response.status_code == 401:
                self.cache.clear()
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("[%s] %s fetch failed: %s", PROVIDER_NAME, kind.value, exc)
            return self._fallback(kind, stamp, ERROR_FALLBACK[kind], "API Error", "FAIL")

        try:
            value = self.extract_mean(payload)
        except DegradedSignalError as exc:
            logger.warning("[%s] %s: %s", PROVIDER_NAME, kind.value, exc.message)
            return self._fallback(
                kind,
                stamp,
                NO_SIGNAL_FALLBACK[kind],
                f"{kind.collection.upper()} (No Usable Signal)",
                "NOSIGNAL",
            )

        return SensorReading(
            reading_id=f"REAL-{kind.value}-{int(time.time() * 1000)}",
            sensor_kind=kind,
            value=value,
            unit=kind.unit,
            timestamp=stamp,
            source_label=kind.live_label,
            confidence=1.0,
        )

    @staticmethod
    def build_request(
        lat: float,
        lng: float,
        sensor_kind: SensorKind,
        as_of: datetime,
    ) -> dict[str, Any]:
        """Build the Statistical API request body for one sensor pull."""
        d = BBOX_HALF_WIDTH_DEG
        start = as_of - timedelta(days=LOOKBACK_DAYS)
        time_range = {"from": to_iso(start), "to": to_iso(as_of)}
        return {
            "input": {
                "bounds": {
                    "bbox": [lng - d, lat - d, lng + d, lat + d],
                    "properties": {"crs": EPSG_4326_URI},
                },
                "data": [
                    {
                        "type": sensor_kind.collection,
                        "dataFilter": {
                            "timeRange": time_range,
                            "mosaickingOrder": "mostRecent",
                        },
                    }
                ],
            },
            "aggregation": {
                "timeRangeType": "searchInterval",
                "timeRange": time_range,
                "aggregationInterval": {
                    "of": "P1D",
                    "lastIntervalBehavior": "SHORTEN",
                },
                "evalscript": sensor_kind.evalscript,
                "width": 1,
                "height": 1,
            },
        }

    @staticmethod
    def extract_mean(payload: dict[str, Any]) -> float:
        """Return the mean of band ``B0`` from the most recent usable interval.

        Raises:
            DegradedSignalError: If no interval carries a finite mean.
        """
        intervals = payload.get("data") or []
        for interval in reversed(intervals):
            try:
                stats = interval["outputs"]["default"]["bands"]["B0"]["stats"]
                mean = float(stats["mean"])
            except (KeyError, TypeError, ValueError):
                continue
            if math.isfinite(mean):
                return mean
        raise DegradedSignalError(
            f"no usable band statistics in {len(intervals)} interval(s)"
        )

    @staticmethod
    def _fallback(
        kind: SensorKind,
        stamp: str,
        value: float,
        label: str,
        prefix: str,
    ) -> SensorReading:
        return SensorReading(
            reading_id=f"{prefix}-{kind.value}-{int(time.time() * 1000)}",
            sensor_kind=kind,
            value=value,
            unit=kind.unit,
            timestamp=stamp,
            source_label=label,
            confidence=0.0,
        )
