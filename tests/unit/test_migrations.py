from hitcounter.migrations import detect_schema_version, repair_store_document
from hitcounter.models import CURRENT_SCHEMA_VERSION, Store


def test_repair_upgrades_legacy_flat_document() -> None:
    legacy = {
        "example.com": {"total": 12, "last": 1700000000000},
        "localhost": {"total": 3, "last": 1700000000500},
    }
    assert detect_schema_version(legacy) == 1

    repaired = repair_store_document(legacy)
    assert repaired["schemaVersion"] == CURRENT_SCHEMA_VERSION
    assert repaired["domains"]["example.com"] == {
        "total": 12,
        "last": 1700000000000,
        "ips": {},
        "projects": {},
    }
    store = Store.model_validate(repaired)
    assert store.domains["localhost"].total == 3


def test_repair_coerces_malformed_fields() -> None:
    document = {
        "schemaVersion": 2,
        "domains": {
            "example.com": {
                "total": "7",
                "last": -5,
                "ips": ["not", "a", "map"],
                "projects": {
                    "blog": {"total": 2.0, "last": 10, "ips": None},
                    "docs": "garbage",
                },
            },
            "broken.net": 42,
        },
    }

    repaired = repair_store_document(document)
    record = repaired["domains"]["example.com"]
    assert record["total"] == 7
    assert record["last"] == 0
    assert record["ips"] == {}
    assert record["projects"]["blog"] == {"total": 2, "last": 10, "ips": {}}
    assert record["projects"]["docs"] == {"total": 0, "last": 0, "ips": {}}
    assert repaired["domains"]["broken.net"]["projects"] == {}
    Store.model_validate(repaired)


def test_repair_fills_missing_ip_record_fields() -> None:
    document = {
        "schemaVersion": 2,
        "domains": {
            "example.com": {
                "total": 2,
                "last": 20,
                "ips": {"1.2.3.4": {"count": 2, "last": 20}, "5.6.7.8": 3, "9.9.9.9": {"count": True}},
            }
        },
    }
    ips = repair_store_document(document)["domains"]["example.com"]["ips"]
    assert ips["1.2.3.4"] == {"count": 2, "first": 20, "last": 20}
    assert ips["5.6.7.8"] == {"count": 3, "first": 0, "last": 0}
    assert ips["9.9.9.9"] == {"count": 0, "first": 0, "last": 0}


def test_repair_handles_non_object_documents() -> None:
    for document in [None, [], "text", 5]:
        assert repair_store_document(document) == {
            "schemaVersion": CURRENT_SCHEMA_VERSION,
            "domains": {},
        }


def test_repair_never_lowers_schema_version() -> None:
    repaired = repair_store_document({"schemaVersion": 9, "domains": {}})
    assert repaired["schemaVersion"] == 9


def test_legacy_domain_named_domains_is_not_mistaken_for_wrapper() -> None:
    legacy = {"domains": {"total": 5, "last": 1}}
    assert detect_schema_version(legacy) == 1

    repaired = repair_store_document(legacy)
    assert repaired["domains"]["domains"]["total"] == 5
    assert repaired["domains"]["domains"]["last"] == 1

    wrapped = {"domains": {"example.com": {"total": 2, "last": 3}}}
    assert repair_store_document(wrapped)["domains"]["example.com"]["total"] == 2
