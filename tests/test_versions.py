"""
Tests for versions and the version store.

Tests:
- Fingerprint order-independence and layout
- Version records (aliases, legacy records without module kinds)
- LocalVersionStore ordering, idempotence and corruption handling
- HttpVersionStore against a mocked session
- Version API (FastAPI)
"""
import os
import json
import pytest
import requests
from unittest.mock import Mock
from fastapi.testclient import TestClient

from walletregistry.protocol.crypto.hash import keccak256_hex
from walletregistry.protocol.crypto.addresses import to_checksum_address
from walletregistry.protocol.types.common import ModuleKind, VersionStoreError
from walletregistry.protocol.types.module import ModuleEntry, Version, version_fingerprint
from walletregistry.versions.store import LocalVersionStore, HttpVersionStore, MemoryVersionStore, open_store
from walletregistry.versions import api
from walletregistry.observability.metrics import metrics_registry


def addr(i: int) -> str:
    return to_checksum_address(bytes([i]) * 20)


def module(i: int, name: str) -> ModuleEntry:
    return ModuleEntry(address=addr(i), name=name)


def version(modules, number="1.0.0", created_at=100) -> Version:
    return Version.create(modules, number, created_at)


# ═══════════════════════════════════════════════════════════════════
# FINGERPRINT & RECORDS
# ═══════════════════════════════════════════════════════════════════

def test_fingerprint_order_independent():
    a, b, c = module(1, "A"), module(2, "B"), module(3, "C")
    fp = version_fingerprint([a, b, c])

    assert fp == version_fingerprint([c, a, b])
    assert fp == version_fingerprint([b, c, a])
    assert fp == version([c, b, a]).fingerprint
    assert fp.startswith("0x") and len(fp) == 10


def test_fingerprint_layout():
    # keccak over addresses sorted in descending order, first 4 bytes
    expected = keccak256_hex(bytes([3]) * 20 + bytes([2]) * 20 + bytes([1]) * 20)[:10]
    assert version_fingerprint([addr(1), addr(3), addr(2)]) == expected


def test_fingerprint_distinguishes_sets():
    fps = {
        version_fingerprint([addr(1), addr(2)]),
        version_fingerprint([addr(1), addr(3)]),
        version_fingerprint([addr(1)]),
        version_fingerprint([addr(1), addr(2), addr(3)]),
    }
    assert len(fps) == 4


def test_fingerprint_ignores_names():
    assert version([module(1, "A")]).fingerprint == version([module(1, "Renamed")]).fingerprint


def test_module_equality_by_address():
    assert module(1, "A") == module(1, "B")
    assert module(1, "A") != module(2, "A")
    assert len({module(1, "A"), module(1, "B")}) == 1


def test_version_rejects_duplicate_addresses():
    with pytest.raises(ValueError):
        version([module(1, "A"), module(1, "B")])


def test_version_json_uses_record_field_names():
    v = version([module(1, "A")], "1.2.3", 1700000000)
    data = json.loads(v.to_json())

    assert data["version"] == "1.2.3"
    assert data["createdAt"] == 1700000000
    assert data["fingerprint"] == v.fingerprint
    assert Version.model_validate_json(v.to_json()) == v


def test_legacy_record_without_kinds():
    modules = [
        {"address": addr(1).lower(), "name": "ModuleManager"},
        {"address": addr(2), "name": "VersionManager"},
        {"address": addr(3), "name": "TransferModule"},
    ]
    v = Version.model_validate({
        "modules": modules,
        "fingerprint": version_fingerprint([m["address"] for m in modules]),
        "version": "1.0.0",
        "createdAt": 1,
    })

    assert [m.kind for m in v.modules] == [
        ModuleKind.LEGACY_COORDINATOR, ModuleKind.MODERN_COORDINATOR, ModuleKind.FEATURE
    ]
    assert v.modules[0].address == addr(1)
    assert v.verify_fingerprint()


# ═══════════════════════════════════════════════════════════════════
# LOCAL STORE
# ═══════════════════════════════════════════════════════════════════

@pytest.fixture
def store(tmp_path):
    return LocalVersionStore(str(tmp_path / "versions"))


def test_load_last_newest_first(store):
    v1 = version([module(1, "A")], "1.0.0", 100)
    v2 = version([module(2, "B")], "1.0.1", 200)
    v3 = version([module(3, "C")], "1.0.2", 300)
    for v in (v2, v3, v1):
        store.upload(v)

    assert store.load_last(2) == [v3, v2]
    assert store.load_last(10) == [v3, v2, v1]
    assert store.load_last(0) == []
    assert store.latest() == v1  # last uploaded


def test_upload_is_idempotent(store):
    v = version([module(1, "A")], "1.0.0", 100)
    store.upload(v)
    store.upload(version([module(1, "A")], "1.0.5", 999))

    assert store.load_last(5) == [v]
    assert store.get(v.fingerprint).version_number == "1.0.0"
    assert len([p for p in store.directory.iterdir() if p.name != "latest.json"]) == 1


def test_upload_counts_metric(store):
    before = metrics_registry.get_sample_value("walletregistry_versions_uploaded_total") or 0
    v = version([module(1, "A"), module(2, "B")])
    store.upload(v)
    store.upload(v)

    assert metrics_registry.get_sample_value("walletregistry_versions_uploaded_total") == before + 1
    assert metrics_registry.get_sample_value("walletregistry_latest_version_modules") == 2


def test_upload_rejects_fingerprint_mismatch(store):
    bad = Version(modules=(module(1, "A"),), fingerprint="0xdeadbeef", version_number="1.0.0", created_at=1)
    with pytest.raises(VersionStoreError):
        store.upload(bad)


def test_get_unknown(store):
    assert store.get("0x00000000") is None
    assert store.latest() is None


def test_corrupted_file(store):
    (store.directory / "0x12345678.json").write_text("{not json")
    with pytest.raises(VersionStoreError):
        store.load_last(3)


def test_non_ascii_names_stored_as_utf8(store):
    v = version([module(1, "Módulo"), module(2, "Zähler")])
    store.upload(v)

    raw = (store.directory / f"{v.fingerprint}.json").read_bytes().decode("utf-8")
    assert "Módulo" in raw
    assert store.get(v.fingerprint).modules == v.modules
    assert [m.name for m in store.latest().modules] == [m.name for m in v.modules]


def test_failed_write_leaves_no_temp_file(store, monkeypatch):
    def replace(src, dst):
        raise RuntimeError("interrupted")

    monkeypatch.setattr(os, "replace", replace)
    with pytest.raises(RuntimeError):
        store.upload(version([module(1, "A")]))

    assert list(store.directory.iterdir()) == []


def test_memory_store():
    v1 = version([module(1, "A")], "1.0.0", 100)
    v2 = version([module(2, "B")], "1.0.1", 200)
    mem = MemoryVersionStore([v1])
    mem.upload(v2)

    assert mem.load_last(3) == [v2, v1]
    assert mem.get(v1.fingerprint) == v1


def test_open_store(tmp_path):
    assert isinstance(open_store(str(tmp_path)), LocalVersionStore)
    assert isinstance(open_store(str(tmp_path), "http://versions.local"), HttpVersionStore)


# ═══════════════════════════════════════════════════════════════════
# HTTP STORE
# ═══════════════════════════════════════════════════════════════════

def test_http_load_last_sorts_response():
    v1 = version([module(1, "A")], "1.0.0", 100)
    v2 = version([module(2, "B")], "1.0.1", 200)
    session = Mock()
    session.get.return_value = Mock(
        status_code=200,
        json=Mock(return_value=[v1.model_dump(mode="json", by_alias=True),
                                v2.model_dump(mode="json", by_alias=True)])
    )

    http = HttpVersionStore("http://versions.local/", session=session)
    assert http.load_last(2) == [v2, v1]
    session.get.assert_called_once_with(
        "http://versions.local/versions", params={"count": 2}, timeout=10
    )


def test_http_upload():
    v = version([module(1, "A")])
    session = Mock()
    session.put.return_value = Mock(status_code=201)

    HttpVersionStore("http://versions.local", session=session).upload(v)

    url = session.put.call_args[0][0]
    assert url == f"http://versions.local/versions/{v.fingerprint}"
    assert json.loads(session.put.call_args[1]["data"])["fingerprint"] == v.fingerprint


def test_http_errors():
    session = Mock()
    session.get.side_effect = requests.ConnectionError("refused")
    with pytest.raises(VersionStoreError):
        HttpVersionStore("http://versions.local", session=session).load_last(3)

    session = Mock()
    session.put.return_value = Mock(status_code=500, text="boom")
    with pytest.raises(VersionStoreError):
        HttpVersionStore("http://versions.local", session=session).upload(version([module(1, "A")]))


# ═══════════════════════════════════════════════════════════════════
# VERSION API
# ═══════════════════════════════════════════════════════════════════

@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(api, "store", LocalVersionStore(str(tmp_path / "served")))
    return TestClient(api.app)


def test_api_round_trip(client):
    v1 = version([module(1, "A")], "1.0.0", 100)
    v2 = version([module(2, "B")], "1.0.1", 200)

    for v in (v1, v2):
        resp = client.put(f"/versions/{v.fingerprint}", json=v.model_dump(mode="json", by_alias=True))
        assert resp.status_code == 201

    resp = client.get("/versions", params={"count": 1})
    assert resp.status_code == 200
    assert [d["fingerprint"] for d in resp.json()] == [v2.fingerprint]

    resp = client.get(f"/versions/{v1.fingerprint}")
    assert resp.status_code == 200
    assert Version.model_validate(resp.json()) == v1

    assert client.get("/versions/0x00000000").status_code == 404


def test_api_rejects_bad_uploads(client):
    v = version([module(1, "A")])
    body = v.model_dump(mode="json", by_alias=True)

    assert client.put("/versions/0x00000000", json=body).status_code == 400
    assert client.put(f"/versions/{v.fingerprint}", json={**body, "modules": []}).status_code == 400
    assert client.put(f"/versions/{v.fingerprint}", json={"modules": "nope"}).status_code == 422
    assert client.get("/versions", params={"count": -1}).status_code == 400


def test_api_metrics(client):
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "walletregistry_versions_uploaded_total" in resp.text


def test_api_without_store(monkeypatch):
    monkeypatch.setattr(api, "store", None)
    assert TestClient(api.app).get("/versions").status_code == 503
