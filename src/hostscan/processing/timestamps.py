# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Timestamp normalization for the analytics store.

The store expects 'YYYY-MM-DD HH:MM:SS' (no fractional seconds, no offset).
"""

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

STORE_FORMAT = "%Y-%m-%d %H:%M:%S"

_ISO_PREFIX = re.compile(r"(\d{4}-\d{2}-\d{2})T(\d{2}:\d{2}:\d{2})")


def _parse_fallback(text: str) -> Optional[datetime]:
    """Best-effort parse of non-ISO-T timestamps (space separated ISO, RFC 2822)."""
    try:
        return datetime.fromisoformat(text.strip().replace("Z", "+00:00"))
    except ValueError:
        pass

    try:
        return parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return None


def to_store_datetime(ts: Any) -> str:
    """
    Convert a timestamp string to the store's DateTime text form.

    Example: '2025-04-21T08:38:47.727181+01:00' -> '2025-04-21 08:38:47'.
    The offset is dropped, not applied. Input that does not carry an
    ISO 'T' timestamp is parsed generically (aware values are converted
    to UTC); anything unparseable is returned unchanged.

    Args:
        ts: Timestamp text (None and empty input yield '')

    Returns:
        Normalized timestamp text
    """
    if not ts:
        return ""
    if not isinstance(ts, str):
        ts = str(ts)

    match = _ISO_PREFIX.search(ts)
    if match:
        return f"{match.group(1)} {match.group(2)}"

    parsed = _parse_fallback(ts)
    if parsed is None:
        return ts

    try:
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed.strftime(STORE_FORMAT)
    except (OverflowError, ValueError):
        return ts
