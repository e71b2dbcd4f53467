"""
Tests for the carrier customization repository.
"""
import asyncio
import json

import pytest

from fulcrum_shipping.core.exceptions import InvalidCustomizationError, StorageError
from fulcrum_shipping.services.customization_repository import (
    CustomizationRepository,
    normalize_store_key,
)
from fulcrum_shipping.services.storage import InMemoryByteStore


def document(memory_store: InMemoryByteStore, key: str = "fulcrum/carriers/default.json"):
    return json.loads(memory_store._objects[key].decode("utf-8"))


class TestStoreKeys:
    @pytest.mark.parametrize("store,expected", [
        (None, "default"),
        ("", "default"),
        ("  eu ", "eu"),
        (["us", " eu", ""], "eu,us"),
        ([], "default"),
    ])
    def test_normalize_store_key(self, store, expected):
        assert normalize_store_key(store) == expected

    def test_document_key(self, repository):
        assert repository.document_key(["b", "a"]) == "fulcrum/carriers/a,b.json"

    def test_custom_prefix_is_trimmed(self, memory_store):
        repository = CustomizationRepository(memory_store, prefix="/shipping/custom/")
        assert repository.document_key("default") == "shipping/custom/default.json"


class TestReads:
    @pytest.mark.asyncio
    async def test_missing_document_is_empty(self, repository):
        assert await repository.list("default") == []
        assert await repository.get("default", "ups") == {}

    @pytest.mark.asyncio
    async def test_malformed_document_is_treated_as_absent(self, repository, memory_store):
        await memory_store.write("fulcrum/carriers/default.json", b"{not json")
        assert await repository.list("default") == []
        assert await repository.get("default", "ups") == {}

    @pytest.mark.asyncio
    async def test_non_list_document_is_ignored(self, repository, memory_store):
        await memory_store.write("fulcrum/carriers/default.json", b'{"code": "ups"}')
        assert await repository.list("default") == []

    @pytest.mark.asyncio
    async def test_legacy_per_code_documents(self, repository, memory_store):
        await memory_store.write("carrier_custom_ups", json.dumps({"code": "ups", "value": 4}).encode())
        assert (await repository.get("default", "ups"))["value"] == 4

        await memory_store.write("carrier_custom_ups.json", json.dumps({"code": "ups", "value": 9}).encode())
        assert (await repository.get("default", "ups"))["value"] == 9

    @pytest.mark.asyncio
    async def test_store_document_wins_over_legacy(self, repository, memory_store):
        await memory_store.write("carrier_custom_ups.json", json.dumps({"code": "ups", "value": 9}).encode())
        await repository.upsert("default", {"code": "ups", "value": 2})
        assert (await repository.get("default", "ups"))["value"] == 2

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, repository):
        await repository.upsert("default", {"code": "ups", "stores": ["FUL"]})
        record = await repository.get("default", "ups")
        record["stores"].append("OTHER")
        assert (await repository.get("default", "ups"))["stores"] == ["FUL"]


class TestUpsert:
    @pytest.mark.asyncio
    async def test_round_trip_normalizes_fields(self, repository):
        saved = await repository.upsert("default", {
            "code": "ups",
            "value": "12.5",
            "customer_groups": ["1", "2", "x"],
            "stores": "FUL, EU",
            "price_per_item": "yes",
            "extra": {"kept": True},
        })

        assert saved["id"].startswith("c_")
        record = await repository.get("default", "ups")
        assert record == saved
        assert record["value"] == 12.5
        assert record["customer_groups"] == [1, 2]
        assert record["stores"] == ["FUL", "EU"]
        assert record["price_per_item"] is True
        assert record["extra"] == {"kept": True}

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, repository, memory_store):
        first = await repository.upsert("default", {"code": "ups", "value": 3})
        snapshot = document(memory_store)
        second = await repository.upsert("default", {"code": "ups", "value": 3})

        assert first == second
        assert document(memory_store) == snapshot
        assert len(snapshot) == 1

    @pytest.mark.asyncio
    async def test_match_by_code_merges_shallowly(self, repository):
        await repository.upsert("default", {"code": "ups", "value": 3, "minimum": 10})
        saved = await repository.upsert("default", {"code": "ups", "value": 5})

        assert saved["value"] == 5
        assert saved["minimum"] == 10

    @pytest.mark.asyncio
    async def test_match_by_id_before_code(self, repository, memory_store):
        first = await repository.upsert("default", {"code": "ups", "minimum": 5})

        saved = await repository.upsert("default", {"id": first["id"], "code": "fedex", "value": 1})

        entries = document(memory_store)
        assert len(entries) == 1
        assert saved["id"] == first["id"]
        assert saved["minimum"] == 5
        assert entries[0]["code"] == "fedex"

    @pytest.mark.asyncio
    async def test_recoding_onto_taken_code_keeps_one_record(self, repository, memory_store):
        first = await repository.upsert("default", {"code": "ups"})
        await repository.upsert("default", {"code": "fedex", "value": 9})

        saved = await repository.upsert("default", {"id": first["id"], "code": "fedex", "value": 1})

        entries = document(memory_store)
        assert [entry["code"] for entry in entries] == ["fedex"]
        assert entries[0]["id"] == first["id"]
        assert (await repository.get("default", "fedex"))["value"] == saved["value"] == 1

    @pytest.mark.asyncio
    async def test_unknown_id_is_appended_with_that_id(self, repository):
        saved = await repository.upsert("default", {"id": "c_fixed", "code": "dhl"})
        assert saved["id"] == "c_fixed"

    @pytest.mark.asyncio
    async def test_record_without_id_or_code_is_rejected(self, repository):
        with pytest.raises(InvalidCustomizationError):
            await repository.upsert("default", {"value": 3})

    @pytest.mark.asyncio
    async def test_refuses_to_overwrite_malformed_document(self, repository, memory_store):
        await memory_store.write("fulcrum/carriers/default.json", b"{not json")

        with pytest.raises(StorageError):
            await repository.upsert("default", {"code": "ups"})

        assert memory_store._objects["fulcrum/carriers/default.json"] == b"{not json"

    @pytest.mark.asyncio
    async def test_concurrent_upserts_keep_every_record(self, repository, memory_store):
        codes = [f"carrier_{i}" for i in range(10)]
        await asyncio.gather(*(repository.upsert("default", {"code": code}) for code in codes))

        assert sorted(entry["code"] for entry in document(memory_store)) == sorted(codes)

    @pytest.mark.asyncio
    async def test_merge_customization_keys_by_code(self, repository):
        saved = await repository.merge_customization("default", "ups", {"code": "ignored", "value": 2})
        assert saved["code"] == "ups"


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_by_id(self, repository):
        saved = await repository.upsert("default", {"code": "ups"})

        assert await repository.delete("default", saved["id"]) is True
        assert await repository.delete("default", saved["id"]) is False
        assert await repository.list("default") == []

    @pytest.mark.asyncio
    async def test_delete_by_code_removes_legacy_documents(self, repository, memory_store):
        await repository.upsert("default", {"code": "ups"})
        await repository.upsert("default", {"code": "fedex"})
        await memory_store.write("carrier_custom_ups.json", b"{}")

        assert await repository.delete_by_code("default", "ups") is True

        assert [entry["code"] for entry in await repository.list("default")] == ["fedex"]
        assert await memory_store.read("carrier_custom_ups.json") is None
        assert await repository.delete_by_code("default", "ups") is False
