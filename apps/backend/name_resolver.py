from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable

import settings
from errors import RelayError

logger = logging.getLogger(__name__)

MIN_BLOB_ENTRIES = 100
STRICT_NAME_KEY = re.compile(r"^(?:UNIT|UNITNAME|SHIP)_(?P<base>[A-Z0-9_]+?)_NAME(?:_V(?P<version>\d+))?$", re.IGNORECASE)
LOOSE_NAME_KEY = re.compile(r"^(?P<base>[A-Z0-9_]+?)_NAME(?:_V(?P<version>\d+))?$", re.IGNORECASE)


def fallback_name(base_id: str) -> str:
    words = str(base_id or "").replace("_", " ").lower().split()
    return " ".join(word.capitalize() for word in words) or "Unknown"


def base_id_of(definition_id: Any) -> str:
    return str(definition_id or "").split(":", 1)[0].strip()


class NameTable:
    def __init__(self, names: dict[str, str] | None = None):
        self._names: dict[str, str] = dict(names or {})
        self.version: str | None = None
        self.loaded_at = 0.0

    def __len__(self) -> int:
        return len(self._names)

    def replace(self, names: dict[str, str], version: str | None = None) -> None:
        self._names = names
        self.version = version
        self.loaded_at = time.time()

    def resolve(self, definition_id: Any) -> str:
        base_id = base_id_of(definition_id)
        if not base_id:
            return "Unknown"
        return self._names.get(base_id) or fallback_name(base_id)


def parse_delimited_blob(blob: str) -> dict[str, str]:
    entries: dict[str, str] = {}
    for line in blob.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        separator = "|" if "|" in line else "="
        key, found, value = line.partition(separator)
        if found and key.strip():
            entries[key.strip()] = value.strip()
    return entries


def is_blob(value: Any) -> bool:
    return isinstance(value, str) and ("|" in value or "=" in value) and "\n" in value


def split_delimited_blob(data: dict[str, Any]) -> dict[str, str] | None:
    blobs = {str(key): value for key, value in data.items() if is_blob(value)}
    if len(blobs) > 1:
        # One blob per locale; keep the configured one.
        blobs = {key: value for key, value in blobs.items() if settings.LOCALIZATION_LOCALE.upper() in key.upper()}
    if len(blobs) != 1:
        return None
    entries = parse_delimited_blob(next(iter(blobs.values())))
    return entries if len(entries) > MIN_BLOB_ENTRIES else None


def top_level_entries(data: dict[str, Any]) -> dict[str, str]:
    return {str(key): value for key, value in data.items() if isinstance(value, str)}


def unwrap_nested(data: dict[str, Any]) -> dict[str, str] | None:
    if len(data) > 3 or any(is_blob(value) for value in data.values()):
        return None
    nested = [value for value in data.values() if isinstance(value, dict)]
    if len(nested) != 1:
        return None
    return first_match(nested[0], (split_delimited_blob, top_level_entries)) or None


SHAPE_DETECTORS: tuple[Callable[[dict[str, Any]], dict[str, str] | None], ...] = (unwrap_nested, split_delimited_blob, top_level_entries)


def first_match(data: dict[str, Any], detectors: tuple[Callable[[dict[str, Any]], dict[str, str] | None], ...]) -> dict[str, str] | None:
    for detector in detectors:
        entries = detector(data)
        if entries is not None:
            return entries
    return None


def flatten_localization(data: Any) -> dict[str, str]:
    if isinstance(data, str):
        entries = parse_delimited_blob(data)
        return entries if len(entries) > MIN_BLOB_ENTRIES else {}
    if not isinstance(data, dict):
        return {}
    return first_match(data, SHAPE_DETECTORS) or {}


def _collect(entries: dict[str, str], pattern: re.Pattern[str], accept: Callable[[str], bool]) -> dict[str, str]:
    names: dict[str, str] = {}
    versions: dict[str, int] = {}
    for key, value in entries.items():
        match = pattern.match(key.strip())
        text = str(value or "").strip()
        if not match or not accept(text):
            continue
        base_id = match.group("base").upper()
        version = int(match.group("version") or 0)
        if base_id in versions and versions[base_id] > version:
            continue
        names[base_id] = text
        versions[base_id] = version
    return names


def extract_unit_names(entries: dict[str, str]) -> dict[str, str]:
    names = _collect(entries, STRICT_NAME_KEY, lambda text: bool(text))
    if names:
        return names
    return _collect(entries, LOOSE_NAME_KEY, lambda text: 2 <= len(text) <= 50)


async def load_name_table(client: Any, table: NameTable) -> bool:
    try:
        metadata = await client.get_metadata()
        version = str(metadata.get("latestLocalizationBundleVersion") or "").strip()
        if not version:
            logger.warning("Metadata carried no localization version; keeping %d cached names.", len(table))
            return False
        if version == table.version and len(table):
            return True
        names = extract_unit_names(flatten_localization(await client.get_localization(version)))
    except RelayError as error:
        logger.warning("Localization refresh failed: %s", error)
        return False
    if not names:
        logger.warning("Localization bundle %s had no recognizable unit names.", version)
        return False
    table.replace(names, version)
    logger.info("Loaded %d unit names from localization bundle %s.", len(names), version)
    return True
