"""
Helper Functions
Text, date and list helpers shared by the pipeline and the services
"""

import json
from datetime import datetime, timezone
from typing import Any, List, Optional

LINK_SEPARATOR = "://"
SANITIZED_LINK_SEPARATOR = "[:]//"
TRUNCATION_MARKER = "[...rest of string]"
# room kept for the " [ip: ...]" suffix and the truncation marker
SECTION_ITEM_RESERVE = 40


def sanitize_links(text: Optional[str]) -> str:
    if not text:
        return ""
    return text.replace(LINK_SEPARATOR, SANITIZED_LINK_SEPARATOR)


def max_item_length(max_section_length: int, items_count: int) -> int:
    return max_section_length // items_count - SECTION_ITEM_RESERVE


def truncate_for_section(text: str, items_count: int, max_section_length: int = 3000) -> str:
    limit = max_item_length(max_section_length, items_count)
    if len(text) > limit:
        return f"{text[:max(limit, 0)]}{TRUNCATION_MARKER}"
    return text


def chunk_list(lst: List[Any], chunk_size: int) -> List[List[Any]]:
    return [lst[i:i + chunk_size] for i in range(0, len(lst), chunk_size)]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def hourly_prefix(moment: datetime, trailing_delimiter: bool = True) -> str:
    """Date part of the hourly object layout, e.g. ``2023/03/22/16/``."""
    moment = ensure_aware(moment).astimezone(timezone.utc)
    prefix = moment.strftime("%Y/%m/%d/%H")
    return f"{prefix}/" if trailing_delimiter else prefix


def safe_json_loads(json_string: Any, default: Any = None) -> Any:
    try:
        return json.loads(json_string)
    except (json.JSONDecodeError, TypeError, UnicodeDecodeError):
        return default


def safe_json_dumps(data: Any) -> str:
    return json.dumps(data, default=str, ensure_ascii=False)
