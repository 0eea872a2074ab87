"""
ThingSpeak channel client.

Reads the latest feed entries of a channel and normalizes them into
Readings, and posts the manual watering command (field6=1).

Field mapping:
- field1 soil moisture, field2 light intensity
- field3 temperature, field4 humidity
- field5 pump state, field6 manual trigger flag
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

from errors import ConfigurationError, ProviderRejected, ProviderUnavailable

logger = logging.getLogger(__name__)

DEFAULT_URL = "https://api.thingspeak.com"


@dataclass(frozen=True)
class Reading:
    soil_moisture: float
    light_intensity: float
    temperature: float
    humidity: float
    pump_state: int
    manual_trigger: int
    ts: int  # epoch seconds, UTC

    def to_dict(self):
        return {
            "soilMoisture": self.soil_moisture,
            "lightIntensity": self.light_intensity,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "pumpState": self.pump_state,
            "manualTrigger": self.manual_trigger,
            "ts": self.ts,
        }


def parse_created_at(value) -> int | None:
    """Parse a ThingSpeak ``created_at`` string to epoch seconds, or None."""
    if not value or not isinstance(value, str):
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def _number(feed: dict, field: str) -> float:
    raw = feed.get(field)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return 0.0
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise ProviderUnavailable(f"ThingSpeak returned a non-numeric {field}: {raw!r}")


def parse_feed(feed: dict) -> Reading | None:
    if not isinstance(feed, dict):
        raise ProviderUnavailable("ThingSpeak returned a feed entry that is not an object")
    ts = parse_created_at(feed.get("created_at"))
    if ts is None:
        logger.debug("Dropping feed entry without a usable created_at: %s", feed.get("entry_id"))
        return None
    values = [_number(feed, f"field{n}") for n in range(1, 7)]
    if not all(math.isfinite(v) for v in values):
        # sensors post nan when a read fails; such a sample can't be stored
        logger.debug("Dropping feed entry with a non-finite field: %s", feed.get("entry_id"))
        return None
    moisture, light, temperature, humidity, pump, trigger = values
    return Reading(
        soil_moisture=moisture,
        light_intensity=light,
        temperature=temperature,
        humidity=humidity,
        pump_state=1 if pump == 1 else 0,
        manual_trigger=1 if trigger == 1 else 0,
        ts=ts,
    )


def _describe(error: httpx.HTTPError) -> str:
    # str(error) includes the request URL, which carries the API key
    if isinstance(error, httpx.HTTPStatusError):
        return f"HTTP {error.response.status_code}"
    return type(error).__name__


class ThingSpeakClient:
    def __init__(self, base_url: str = DEFAULT_URL, timeout: float = 10.0, transport=None):
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _feeds(self, channel_id, read_key, results: int) -> list:
        if not channel_id or not read_key:
            raise ConfigurationError(
                "ThingSpeak channel ID and read API key must be set in Settings."
            )
        try:
            resp = self._client.get(
                f"/channels/{channel_id}/feeds.json",
                params={"api_key": read_key, "results": results},
            )
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"Failed to fetch ThingSpeak feed: {_describe(e)}")
        except ValueError:
            raise ProviderUnavailable("ThingSpeak returned a body that is not JSON")

        feeds = payload.get("feeds") if isinstance(payload, dict) else None
        if not isinstance(feeds, list):
            raise ProviderUnavailable("ThingSpeak payload has no feeds list")
        return feeds

    def fetch_readings(self, channel_id, read_key, results: int = 100):
        """Fetch the latest ``results`` feed entries of a channel.

        The HTTP call happens immediately; the returned generator yields
        Readings lazily in the order ThingSpeak sent them. Entries without a
        parseable timestamp or with a nan/inf field are skipped.
        """
        feeds = self._feeds(channel_id, read_key, results)
        return (r for r in map(parse_feed, feeds) if r is not None)

    def latest_reading(self, channel_id, read_key) -> Reading | None:
        readings = list(self.fetch_readings(channel_id, read_key, results=1))
        return max(readings, key=lambda r: r.ts) if readings else None

    def send_manual_trigger(self, write_key) -> int:
        """Ask the device to water by writing field6=1. Returns the entry id."""
        if not write_key:
            raise ConfigurationError("ThingSpeak write API key must be set in Settings.")
        try:
            resp = self._client.post("/update.json", params={"api_key": write_key, "field6": 1})
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"Failed to send command to ThingSpeak: {_describe(e)}")

        body = resp.text.strip()
        if body == "0":
            raise ProviderRejected(
                "ThingSpeak rejected the update (likely rate limit: 15s). "
                "Please wait a bit and try again."
            )
        try:
            # update.json answers with the created entry; update answers with its id
            data = resp.json()
            return int(data["entry_id"]) if isinstance(data, dict) else int(data)
        except (ValueError, KeyError, TypeError):
            raise ProviderUnavailable(f"Unexpected ThingSpeak update response: {body[:80]!r}")
