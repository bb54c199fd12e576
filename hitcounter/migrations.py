"""Repair pass that upgrades any loaded counter document to the current schema."""

from __future__ import annotations

import math
from typing import Any

from hitcounter.models import CURRENT_SCHEMA_VERSION

LEGACY_FLAT_SCHEMA_VERSION = 1


def _non_negative_int(value: object) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float) and math.isfinite(value):
        return max(int(value), 0)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return 0


def _repair_ip_record(value: object) -> dict[str, int]:
    if not isinstance(value, dict):
        # Bare numbers are treated as a visit count with unknown timestamps.
        return {"count": _non_negative_int(value), "first": 0, "last": 0}

    last = _non_negative_int(value.get("last"))
    first = _non_negative_int(value.get("first")) if "first" in value else last
    return {
        "count": _non_negative_int(value.get("count")),
        "first": first,
        "last": last,
    }


def _repair_ips(value: object) -> dict[str, dict[str, int]]:
    if not isinstance(value, dict):
        return {}
    return {str(address): _repair_ip_record(item) for address, item in value.items()}


def _repair_counter_fields(value: object) -> dict[str, Any]:
    record = value if isinstance(value, dict) else {}
    return {
        "total": _non_negative_int(record.get("total")),
        "last": _non_negative_int(record.get("last")),
        "ips": _repair_ips(record.get("ips")),
    }


def repair_domain_record(value: object) -> dict[str, Any]:
    """Coerce a domain entry (and its nested projects) to well-typed defaults."""

    repaired = _repair_counter_fields(value)
    raw_projects = value.get("projects") if isinstance(value, dict) else None
    if isinstance(raw_projects, dict):
        repaired["projects"] = {
            str(key): _repair_counter_fields(item) for key, item in raw_projects.items()
        }
    else:
        repaired["projects"] = {}
    return repaired


def _is_current_layout(document: dict[str, Any]) -> bool:
    if "schemaVersion" in document:
        return True
    if set(document) != {"domains"} or not isinstance(document["domains"], dict):
        return False
    # A legacy domain literally named "domains" holds scalar counters, not records.
    return all(isinstance(record, dict) for record in document["domains"].values())


def detect_schema_version(document: object) -> int:
    if isinstance(document, dict) and _is_current_layout(document):
        return _non_negative_int(document.get("schemaVersion")) or CURRENT_SCHEMA_VERSION
    return LEGACY_FLAT_SCHEMA_VERSION


def repair_store_document(document: object) -> dict[str, Any]:
    """
    Return a current-schema document built from whatever was on disk.

    Two layouts are understood:
    1. Current: {"schemaVersion": n, "domains": {domain: record}}
    2. Legacy flat: {domain: {"total": n, "last": ts}} with no wrapper

    Unknown or malformed fields fall back to zero/empty values; nothing is
    rejected.
    """

    if not isinstance(document, dict):
        return {"schemaVersion": CURRENT_SCHEMA_VERSION, "domains": {}}

    if _is_current_layout(document):
        raw_domains = document.get("domains")
        stored_version = _non_negative_int(document.get("schemaVersion"))
    else:
        raw_domains = document
        stored_version = LEGACY_FLAT_SCHEMA_VERSION

    domains: dict[str, Any] = {}
    if isinstance(raw_domains, dict):
        for domain, record in raw_domains.items():
            domains[str(domain)] = repair_domain_record(record)

    return {
        "schemaVersion": max(stored_version, CURRENT_SCHEMA_VERSION),
        "domains": domains,
    }
