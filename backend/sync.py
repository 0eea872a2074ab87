"""
Turns the ThingSpeak feed into durable watering logs.

A refresh runs strictly in sequence: fetch the feed, reconcile it against
the newest stored log and the owner's clear cutoff, insert the qualifying
readings in one batch, then trim the owner's logs back to the retention cap.
Manual watering bypasses reconciliation and records exactly one entry.
"""

import logging
import math
import time

from conditions import classify_moisture
from errors import ConfigurationError, ProviderRejected, ProviderUnavailable, StoreFailure, ValidationError
from models import WaterLog
from store import LogStore, get_or_create_settings

logger = logging.getLogger(__name__)

log_store = LogStore()

CLOCK_SKEW = 60  # seconds a caller supplied ts may run ahead of ours

READING_FIELDS = {
    "soilMoisture": "soil_moisture",
    "lightIntensity": "light_intensity",
    "temperature": "temperature",
    "humidity": "humidity",
}


def _entry(owner_id, source, ts, soil_moisture, light_intensity, temperature, humidity):
    return WaterLog(
        owner_id=owner_id,
        ts=ts,
        soil_moisture=soil_moisture,
        light_intensity=light_intensity,
        temperature=temperature,
        humidity=humidity,
        source=source,
        condition=classify_moisture(soil_moisture).value,
    )


def reconcile(owner_id, readings, last_ts=None, clear_cutoff=None):
    """Pick the readings that become new automatic log entries.

    A reading qualifies when all three hold:
      - it is newer than the newest stored log (any reading if there is none)
      - it is newer than the owner's clear cutoff, when one is set
      - the pump was on (pump_state == 1)

    The checks are per reading, so provider order does not matter. A reading
    whose timestamp was already accepted in this batch is skipped.
    Returns unsaved WaterLog rows.
    """
    accepted = {}
    for reading in readings:
        if last_ts is not None and reading.ts <= last_ts:
            continue
        if clear_cutoff is not None and reading.ts <= clear_cutoff:
            continue
        if reading.pump_state != 1:
            continue
        if reading.ts in accepted:
            continue
        accepted[reading.ts] = _entry(
            owner_id, "automatic", reading.ts,
            reading.soil_moisture, reading.light_intensity,
            reading.temperature, reading.humidity,
        )
    return list(accepted.values())


def trim_logs(store, owner_id, keep):
    """Delete everything but the ``keep`` newest logs of an owner, whatever their source."""
    keep_ids = [log.id for log in store.list_recent(owner_id, keep)]
    deleted = store.delete_except(owner_id, keep_ids)
    if deleted:
        logger.info("Trimmed %d old logs for owner %s", deleted, owner_id)
    return deleted


def get_recent_logs(owner_id, limit=5, store=log_store):
    return store.list_recent(owner_id, limit)


def clear_logs(owner_id, store=log_store):
    """Delete all of an owner's logs and remember when, so a refresh can't bring them back."""
    settings = get_or_create_settings(owner_id)
    settings.log_clear_cutoff = int(time.time())
    # delete_all commits the cutoff together with the delete
    store.delete_all(owner_id)
    return settings.log_clear_cutoff


def refresh(owner_id, client, results=100, keep=5, store=log_store):
    settings = get_or_create_settings(owner_id)
    readings = list(client.fetch_readings(settings.channel_id, settings.read_key, results))
    live = max(readings, key=lambda r: r.ts) if readings else None

    last = store.find_last(owner_id)
    entries = reconcile(
        owner_id, readings,
        last_ts=last.ts if last else None,
        clear_cutoff=settings.log_clear_cutoff,
    )
    synced = store.insert_batch(owner_id, entries)
    logger.info("Synced %d automatic logs for owner %s (%d readings fetched)",
                synced, owner_id, len(readings))

    result = {"liveReading": live.to_dict() if live else None, "syncedCount": synced}
    try:
        trim_logs(store, owner_id, keep)
    except StoreFailure as e:
        logger.warning("Trimming logs for owner %s failed: %s", owner_id, e.message)
        result["trimError"] = e.message
    return result


def parse_reading_values(data):
    """Validate caller supplied sensor values for a manual or test log."""
    if not isinstance(data, dict):
        raise ValidationError("Reading values must be a JSON object.")
    values = {}
    for key, column in READING_FIELDS.items():
        value = data.get(key)
        if (isinstance(value, bool) or not isinstance(value, (int, float))
                or not math.isfinite(value)):
            raise ValidationError(f"{key} is required and must be a number")
        values[column] = float(value)

    now = int(time.time())
    ts = data.get("ts")
    if ts is None:
        ts = now
    elif isinstance(ts, bool) or not isinstance(ts, int) or ts < 0:
        raise ValidationError("ts must be a positive integer (epoch seconds)")
    elif ts > now + CLOCK_SKEW:
        # a future row would stay the newest log and block every later sync
        raise ValidationError("ts cannot be in the future")
    values["ts"] = ts
    return values


def log_manual_watering(owner_id, client, override=None, send_command=True,
                        trim_keep=None, store=log_store):
    """Record one manual watering, optionally telling the device to water.

    Values come from ``override`` when given, otherwise from the latest
    reading on the channel. With ``send_command`` the ThingSpeak field6
    trigger is written after the log is stored; a rejected write raises
    ProviderRejected carrying the stored entry.
    """
    settings = get_or_create_settings(owner_id)
    if send_command and not settings.write_key:
        raise ConfigurationError("ThingSpeak write API key must be set in Settings.")

    if override is not None:
        values = parse_reading_values(override)
    else:
        reading = client.latest_reading(settings.channel_id, settings.read_key)
        if reading is None:
            raise ProviderUnavailable("No ThingSpeak feed data available to log.")
        values = {
            "ts": reading.ts,
            "soil_moisture": reading.soil_moisture,
            "light_intensity": reading.light_intensity,
            "temperature": reading.temperature,
            "humidity": reading.humidity,
        }

    entry = _entry(owner_id, "manual", **values)
    store.insert_batch(owner_id, [entry])
    logger.info("Manual watering logged for owner %s (log %s)", owner_id, entry.id)

    if trim_keep:
        try:
            trim_logs(store, owner_id, trim_keep)
        except StoreFailure as e:
            logger.warning("Trimming logs for owner %s failed: %s", owner_id, e.message)

    if send_command:
        try:
            entry_id = client.send_manual_trigger(settings.write_key)
        except ProviderRejected as e:
            logger.warning("ThingSpeak rejected manual command for owner %s", owner_id)
            e.entry = entry
            raise
        logger.info("Manual command sent to ThingSpeak, entry %s", entry_id)
    return entry


def add_test_log(owner_id, data, store=log_store):
    entry = _entry(owner_id, "test", **parse_reading_values(data))
    store.insert_batch(owner_id, [entry])
    return entry
