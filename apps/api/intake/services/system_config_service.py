"""System configuration (feature toggles and business defaults)."""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy.orm import Session

from intake.db.enums import ConfigType
from intake.db.models import SystemConfig

logger = logging.getLogger(__name__)

CRM_WEBHOOK_ENABLED = "crm_webhook_enabled"
SHEETS_MIRROR_ENABLED = "sheets_mirror_enabled"
DEFAULT_COMPANY = "default_company"

# key -> (value, type, description)
DEFAULT_CONFIG: dict[str, tuple[str, ConfigType, str]] = {
    CRM_WEBHOOK_ENABLED: ("true", ConfigType.BOOLEAN, "Post new clients to the CRM webhook"),
    SHEETS_MIRROR_ENABLED: ("true", ConfigType.BOOLEAN, "Mirror client writes to the spreadsheet"),
    DEFAULT_COMPANY: ("IRIAS Ironworks", ConfigType.STRING, "Company name used when none is given"),
}

_TRUE_VALUES = {"true", "1", "yes", "on"}


def _decode(value: str | None, config_type: str) -> Any:
    if value is None:
        return None
    if config_type == ConfigType.BOOLEAN.value:
        return value.strip().lower() in _TRUE_VALUES
    if config_type == ConfigType.NUMBER.value:
        number = float(value)
        return int(number) if number.is_integer() else number
    if config_type == ConfigType.JSON.value:
        return json.loads(value)
    return value


def _encode(value: Any, config_type: ConfigType) -> str:
    if config_type == ConfigType.BOOLEAN:
        return "true" if value else "false"
    if config_type == ConfigType.JSON:
        return json.dumps(value, sort_keys=True)
    return str(value)


def get_entry(db: Session, key: str) -> SystemConfig | None:
    return db.query(SystemConfig).filter(SystemConfig.config_key == key).first()


def get_value(db: Session, key: str, default: Any = None) -> Any:
    """Typed value for ``key``, or ``default`` when missing or unreadable."""
    entry = get_entry(db, key)
    if entry is None:
        return default
    try:
        return _decode(entry.config_value, entry.config_type)
    except ValueError:
        logger.warning("Unreadable system config value key=%s type=%s", key, entry.config_type)
        return default


def is_enabled(db: Session, key: str, default: bool = True) -> bool:
    return bool(get_value(db, key, default))


def set_value(
    db: Session,
    key: str,
    value: Any,
    config_type: ConfigType = ConfigType.STRING,
    description: str | None = None,
) -> SystemConfig:
    """Create or update a config entry (caller commits)."""
    entry = get_entry(db, key)
    if entry is None:
        entry = SystemConfig(config_key=key)
        db.add(entry)
    entry.config_value = _encode(value, config_type)
    entry.config_type = config_type.value
    if description is not None:
        entry.description = description
    db.flush()
    return entry


def seed_defaults(db: Session) -> int:
    """Insert missing default keys. Returns the number inserted."""
    inserted = 0
    for key, (value, config_type, description) in DEFAULT_CONFIG.items():
        if get_entry(db, key) is not None:
            continue
        db.add(
            SystemConfig(
                config_key=key,
                config_value=value,
                config_type=config_type.value,
                description=description,
            )
        )
        inserted += 1
    db.flush()
    return inserted


def list_all(db: Session) -> dict[str, Any]:
    entries = db.query(SystemConfig).order_by(SystemConfig.config_key).all()
    result: dict[str, Any] = {}
    for entry in entries:
        try:
            result[entry.config_key] = _decode(entry.config_value, entry.config_type)
        except ValueError:
            result[entry.config_key] = entry.config_value
    return result
