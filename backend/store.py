"""
Persistence boundary for watering logs and per-owner settings.

The sync code only talks to LogStore; it never builds queries itself.
Every write commits on its own and is rolled back as a whole on error.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from errors import StoreFailure, ValidationError
from models import SETTINGS_DEFAULTS, Settings, WaterLog, db

logger = logging.getLogger(__name__)

# JSON field name -> (column, accepted python types)
SETTINGS_FIELDS = {
    "moistureThreshold": ("moisture_threshold", (int, float)),
    "lightThreshold": ("light_threshold", (int, float)),
    "thingSpeakChannelId": ("channel_id", (str, int)),
    "thingSpeakReadApiKey": ("read_key", (str,)),
    "thingSpeakWriteApiKey": ("write_key", (str,)),
}


def _commit(operation):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error("Database error during %s: %s", operation, e)
        raise StoreFailure(f"Failed to {operation}.", operation=operation)


class LogStore:
    def list_recent(self, owner_id, limit):
        try:
            return (WaterLog.query
                    .filter_by(owner_id=owner_id)
                    .order_by(WaterLog.ts.desc(), WaterLog.id.desc())
                    .limit(limit)
                    .all())
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreFailure(f"Failed to fetch logs: {e}", operation="list logs")

    def find_last(self, owner_id):
        recent = self.list_recent(owner_id, 1)
        return recent[0] if recent else None

    def insert_batch(self, owner_id, entries):
        for entry in entries:
            if entry.owner_id != owner_id:
                raise ValueError("entry belongs to another owner")
        if not entries:
            return 0
        db.session.add_all(entries)
        _commit("insert logs")
        return len(entries)

    def delete_all(self, owner_id):
        self._delete(WaterLog.query.filter_by(owner_id=owner_id), "clear logs")

    def delete_except(self, owner_id, ids_to_keep):
        q = WaterLog.query.filter_by(owner_id=owner_id)
        if ids_to_keep:
            q = q.filter(WaterLog.id.notin_(list(ids_to_keep)))
        return self._delete(q, "trim logs")

    def _delete(self, query, operation):
        try:
            deleted = query.delete(synchronize_session=False)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreFailure(f"Failed to {operation}: {e}", operation=operation)
        _commit(operation)
        return deleted


def get_or_create_settings(owner_id):
    """Return the owner's settings row, persisting SETTINGS_DEFAULTS on first read."""
    settings = Settings.query.filter_by(owner_id=owner_id).first()
    if settings is None:
        settings = Settings(owner_id=owner_id, **SETTINGS_DEFAULTS)
        db.session.add(settings)
        _commit("create settings")
        logger.info("Created default settings for owner %s", owner_id)
    return settings


def update_settings(owner_id, partial):
    if not isinstance(partial, dict):
        raise ValidationError("Settings update must be a JSON object.")

    changes = {}
    for key, value in partial.items():
        if key not in SETTINGS_FIELDS:
            raise ValidationError(f"Unknown or read-only setting: {key}")
        column, types = SETTINGS_FIELDS[key]
        if value is not None and (isinstance(value, bool) or not isinstance(value, types)):
            raise ValidationError(f"Invalid value for {key}")
        if value is None and column.endswith("threshold"):
            raise ValidationError(f"{key} cannot be empty")
        if column == "channel_id" and value is not None:
            value = str(value)
        changes[column] = value

    settings = get_or_create_settings(owner_id)
    for column, value in changes.items():
        setattr(settings, column, value)
    _commit("update settings")
    return settings
