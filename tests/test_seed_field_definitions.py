"""Tests for the field catalogue seeding script."""
import json

import httpx
import pytest

import remote_api
from field_categories import default_catalog
from seed_field_definitions import plan_upserts, seed


def test_plan_upserts_all():
    catalog = default_catalog()
    assert plan_upserts(catalog, [{"key": "gender"}], only_missing=False) == catalog


def test_plan_upserts_only_missing():
    catalog = default_catalog()
    todo = plan_upserts(catalog, [{"key": "gender"}, {"key": "id_number"}], only_missing=True)
    keys = [d["key"] for d in todo]
    assert "gender" not in keys and "id_number" not in keys
    assert len(todo) == len(catalog) - 2


@pytest.fixture
def upserts():
    written = []

    def handle(request):
        body = json.loads(request.content)
        if body["operationName"] == "FieldDefinitions":
            return httpx.Response(200, json={"data": {"fieldDefinitions": [{"key": "gender"}]}})
        written.append(body["variables"]["input"])
        return httpx.Response(200, json={"data": {"upsertFieldDefinition": body["variables"]["input"]}})

    remote_api.TRANSPORT = httpx.MockTransport(handle)
    yield written
    remote_api.TRANSPORT = None


@pytest.mark.asyncio
async def test_seed_only_missing(upserts):
    n = await seed("token", dry_run=False, only_missing=True)
    assert n == len(default_catalog()) - 1
    assert len(upserts) == n
    assert "gender" not in {d["key"] for d in upserts}


@pytest.mark.asyncio
async def test_seed_dry_run_writes_nothing(upserts):
    n = await seed("token", dry_run=True, only_missing=False)
    assert n == len(default_catalog())
    assert upserts == []
