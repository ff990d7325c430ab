# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Envelope resolution for raw queue jobs.

Producers have emitted several envelope shapes over time. Each one is
tried in order, most specific first, and the first match yields the
canonical (tenant, payload) pair:

1. {"jobData": {"tenant": {...}, "payload": {...}}}
2. {"jobData": {"payload": {"metadata": {"scanType": ...}}}}   tenant missing or partial
3. {"payload": {"metadata": {"scanType": ...}}}                no jobData wrapper
4. {"tenant": {"tenant_id": ...}, "payload": {"metadata": {"scanType": ...}}}

Missing tenant identifiers are replaced by sentinel values. A scanType is
never invented: payloads without one resolve to an unknown scan.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .errors import UnrecognizedEnvelope
from .models import CanonicalEvent, Tenant, parse_payload, scan_type_of

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 200
ELLIPSIS = "..."

_Match = Optional[Tuple[Any, Mapping[str, Any]]]


def _mapping(value: Any) -> Optional[Mapping[str, Any]]:
    return value if isinstance(value, Mapping) else None


def _wrapped_complete(data: Mapping[str, Any]) -> _Match:
    job_data = _mapping(data.get("jobData"))
    if job_data and _mapping(job_data.get("tenant")) and _mapping(job_data.get("payload")):
        return job_data["tenant"], job_data["payload"]
    return None


def _wrapped_payload(data: Mapping[str, Any]) -> _Match:
    job_data = _mapping(data.get("jobData"))
    if job_data and scan_type_of(job_data.get("payload")):
        return job_data.get("tenant"), job_data["payload"]
    return None


def _root_payload(data: Mapping[str, Any]) -> _Match:
    if scan_type_of(data.get("payload")):
        return data.get("tenant"), data["payload"]
    return None


def _root_complete(data: Mapping[str, Any]) -> _Match:
    tenant = _mapping(data.get("tenant"))
    if tenant and tenant.get("tenant_id") and scan_type_of(data.get("payload")):
        return tenant, data["payload"]
    return None


ENVELOPE_SHAPES: List[Tuple[str, Callable[[Mapping[str, Any]], _Match]]] = [
    ("jobData", _wrapped_complete),
    ("jobData.payload", _wrapped_payload),
    ("payload", _root_payload),
    ("tenant+payload", _root_complete),
]


def snippet_of(raw_job: Any, limit: int = SNIPPET_LENGTH) -> str:
    """Return a diagnostic rendering of a raw job of at most ``limit`` chars."""
    try:
        text = json.dumps(raw_job, default=str)
    except (TypeError, ValueError):
        text = repr(raw_job)
    if len(text) > limit:
        return text[:max(limit - len(ELLIPSIS), 0)] + ELLIPSIS
    return text


def resolve(raw_job: Any) -> CanonicalEvent:
    """
    Recover the canonical event from a raw job of any known shape.

    Args:
        raw_job: Decoded job data as taken from the queue

    Returns:
        CanonicalEvent with a typed payload

    Raises:
        UnrecognizedEnvelope: If no known envelope shape matches
    """
    if isinstance(raw_job, Mapping):
        for shape, matcher in ENVELOPE_SHAPES:
            matched = matcher(raw_job)
            if matched is None:
                continue

            raw_tenant, raw_payload = matched
            tenant = Tenant.from_partial(raw_tenant)
            if not _mapping(raw_tenant) or not (
                raw_tenant.get("tenant_id") and raw_tenant.get("host_id")
            ):
                logger.debug(
                    f"Job matched '{shape}' envelope with incomplete tenant; "
                    f"using tenant_id={tenant.tenant_id} host_id={tenant.host_id}"
                )
            return CanonicalEvent(tenant=tenant, payload=parse_payload(raw_payload))

    snippet = snippet_of(raw_job)
    logger.error(f"Could not determine job format: {snippet}")
    raise UnrecognizedEnvelope(snippet)


def describe(event: CanonicalEvent) -> Dict[str, str]:
    """Small summary of a resolved event for log lines and CLI output."""
    return {
        "tenant_id": event.tenant.tenant_id,
        "host_id": event.tenant.host_id,
        "scan_type": event.scan_type,
        "timestamp": event.payload.timestamp,
    }
