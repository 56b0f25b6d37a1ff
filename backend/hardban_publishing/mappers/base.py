"""
Shared helpers for the row ⇄ API mappers.

Rows are plain mappings keyed by column name (see `database.row_from_model`).
JSON blob columns arrive either as serialized text or already decoded; they
are decoded once here on read and encoded once here on write.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, Mapping, Optional, Type

from hardban_publishing.exceptions import MappingError

logger = logging.getLogger(__name__)

# Everything a mapper catches before degrading to None
MAPPING_ERRORS = (MappingError, TypeError, ValueError, KeyError, AttributeError)


def parse_json_field(value: Any, expected: Type = dict, field_name: str = "field") -> Any:
    """
    Normalizes a JSON blob to `expected` (dict or list).

    None and "" give None. Already-decoded values are type-checked and
    returned as-is.

    Raises:
        MappingError: the text is not valid JSON or decodes to the wrong type
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise MappingError(field_name, message=f"Invalid JSON in {field_name}: {e.msg}") from e
    if not isinstance(value, expected):
        raise MappingError(
            field_name,
            message=f"{field_name} must be a JSON {expected.__name__}, got {type(value).__name__}",
        )
    return value


def dump_json_field(value: Any) -> Optional[str]:
    """dict/list → JSON text; strings and None pass through."""
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def safe_section(
    section: str,
    build: Callable[..., Any],
    *args: Any,
    entity_id: Any = None,
) -> Any:
    """
    Runs one sub-object builder; a failure is logged and gives None for that
    section only, the rest of the mapping continues.
    """
    try:
        return build(*args)
    except MAPPING_ERRORS as e:
        logger.error(
            "Error mapping %s: %s",
            section,
            str(e),
            extra={"section": section, "entity_id": str(entity_id) if entity_id else None},
        )
        return None


def optional_float(value: Any) -> Optional[float]:
    """Falsy (None, 0, "") → None, otherwise float."""
    return float(value) if value else None


def to_float(value: Any, default: float = 0.0) -> float:
    return float(value) if value else default


def to_int(value: Any, default: int = 0) -> int:
    return int(float(value)) if value else default


def pick_present(data: Mapping[str, Any], fields: Iterable[str]) -> dict:
    """Partial update selection: only keys present in `data` are copied."""
    return {name: data[name] for name in fields if name in data}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat().replace("+00:00", "Z")


def validate_mapped_data(
    mapped: Optional[Mapping[str, Any]],
    required_fields: Iterable[str] = (),
    entity: str = "record",
) -> bool:
    """False (with a warning) when `mapped` is empty or lacks a required field."""
    if not mapped:
        return False
    for name in required_fields:
        if mapped.get(name) is None:
            logger.warning(
                "Missing required field in mapped %s data: %s",
                entity,
                name,
                extra={"field": name, "entity": entity},
            )
            return False
    return True


def map_list(
    to_response: Callable[..., Optional[dict]],
    rows: Any,
    *args: Any,
) -> List[dict]:
    """Maps each row independently and drops rows that mapped to None."""
    if not isinstance(rows, (list, tuple)):
        return []
    mapped = (to_response(row, *args) for row in rows)
    return [item for item in mapped if item is not None]
