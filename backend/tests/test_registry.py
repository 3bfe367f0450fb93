"""
Unit tests for the in-memory model registry.
"""
import json

import pytest

from modelgate.services.models.registry import (
    ModelLifecycleError,
    ModelRegistry,
    RegistryUnavailableError,
    load_catalog,
)
from modelgate.services.models.schema import ModelDescriptor, ModelRole, ModelStatus


def model(model_id, role=ModelRole.SCHEMA, **overrides):
    return ModelDescriptor(id=model_id, name=model_id, role=role, **overrides)


@pytest.mark.asyncio
async def test_list_by_role_preserves_order_and_filters():
    registry = ModelRegistry(models=[
        model("b"),
        model("a"),
        model("chat", role=ModelRole.CONVERSATIONAL),
        model("off", status=ModelStatus.DISABLED),
    ])

    schema_models = await registry.list_by_role(ModelRole.SCHEMA)
    assert [m.id for m in schema_models] == ["b", "a"]


def test_list_models_filters():
    registry = ModelRegistry(models=[
        model("m1", provider="anthropic", capabilities=frozenset({"sql"})),
        model("m2", provider="openai", status=ModelStatus.CANARY),
        model("m3", provider="openai", is_active=False),
    ])

    assert [m.id for m in registry.list_models(provider="openai")] == ["m2", "m3"]
    assert [m.id for m in registry.list_models(status=ModelStatus.CANARY)] == ["m2"]
    assert [m.id for m in registry.list_models(is_active=False)] == ["m3"]
    assert [m.id for m in registry.list_models(capabilities=["sql"])] == ["m1"]


@pytest.mark.asyncio
async def test_set_status_promotes_canary():
    registry = ModelRegistry(models=[model("m1", status=ModelStatus.CANARY)])

    updated = registry.set_status("m1", ModelStatus.STABLE)

    assert updated.status == ModelStatus.STABLE
    assert registry.get_model("m1").status == ModelStatus.STABLE
    with pytest.raises(KeyError):
        registry.set_status("missing", ModelStatus.STABLE)


@pytest.mark.asyncio
async def test_loader_refresh_after_ttl():
    calls = []

    async def loader():
        calls.append(1)
        return [model(f"m{len(calls)}")]

    registry = ModelRegistry(loader=loader, cache_ttl_seconds=0)
    first = await registry.list_by_role(ModelRole.SCHEMA)
    second = await registry.list_by_role(ModelRole.SCHEMA)

    assert [m.id for m in first] == ["m1"]
    assert [m.id for m in second] == ["m2"]


@pytest.mark.asyncio
async def test_loader_is_cached_within_ttl():
    calls = []

    async def loader():
        calls.append(1)
        return [model("m1")]

    registry = ModelRegistry(loader=loader, cache_ttl_seconds=3600)
    await registry.list_by_role(ModelRole.SCHEMA)
    await registry.list_by_role(ModelRole.SCHEMA)
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_failed_refresh_serves_stale_snapshot():
    state = {"fail": False}

    async def loader():
        if state["fail"]:
            raise ConnectionError("down")
        return [model("m1")]

    registry = ModelRegistry(loader=loader, cache_ttl_seconds=0)
    await registry.list_by_role(ModelRole.SCHEMA)

    state["fail"] = True
    models = await registry.list_by_role(ModelRole.SCHEMA)
    assert [m.id for m in models] == ["m1"]


@pytest.mark.asyncio
async def test_failed_first_load_raises():
    async def loader():
        raise ConnectionError("down")

    registry = ModelRegistry(loader=loader)
    with pytest.raises(RegistryUnavailableError):
        await registry.list_by_role(ModelRole.SCHEMA)


@pytest.mark.asyncio
async def test_from_file(tmp_path):
    catalog = tmp_path / "models.json"
    catalog.write_text(json.dumps({
        "models": [
            {"id": "m1", "name": "One", "role": "schema", "capabilities": ["sql"]},
            {"id": "m2", "name": "Two", "role": "research", "status": "canary"},
        ]
    }))

    registry = ModelRegistry.from_file(catalog)

    schema_models = await registry.list_by_role(ModelRole.SCHEMA)
    assert [m.id for m in schema_models] == ["m1"]
    assert schema_models[0].capabilities == frozenset({"sql"})
    assert registry.get_model("m2").status == ModelStatus.CANARY


def test_load_catalog_errors(tmp_path):
    with pytest.raises(RegistryUnavailableError):
        load_catalog(tmp_path / "missing.json")

    bad = tmp_path / "bad.json"
    bad.write_text("[{\"id\": \"m1\"}]")
    with pytest.raises(RegistryUnavailableError):
        load_catalog(bad)


def test_promote_canary_disables_current_stable_models():
    registry = ModelRegistry(models=[
        model("old-1"),
        model("old-2"),
        model("retired", is_active=False),
        model("other-role", role=ModelRole.RESEARCH),
        model("candidate", status=ModelStatus.CANARY),
    ])

    promoted = registry.promote_canary("candidate")

    assert promoted.status == ModelStatus.STABLE
    assert registry.get_model("candidate").status == ModelStatus.STABLE
    assert registry.get_model("old-1").status == ModelStatus.DISABLED
    assert registry.get_model("old-2").status == ModelStatus.DISABLED
    # inactive and other-role models are left alone
    assert registry.get_model("retired").status == ModelStatus.STABLE
    assert registry.get_model("other-role").status == ModelStatus.STABLE


@pytest.mark.asyncio
async def test_promoted_canary_is_the_only_selectable_stable_model():
    registry = ModelRegistry(models=[model("old"), model("candidate", status=ModelStatus.CANARY)])

    registry.promote_canary("candidate")

    assert [m.id for m in await registry.list_by_role(ModelRole.SCHEMA)] == ["candidate"]


def test_promote_canary_rejects_unknown_and_non_canary_models():
    registry = ModelRegistry(models=[model("stable")])

    with pytest.raises(ModelLifecycleError, match="not found"):
        registry.promote_canary("missing")
    with pytest.raises(ModelLifecycleError, match="not in canary status"):
        registry.promote_canary("stable")
    assert registry.get_model("stable").status == ModelStatus.STABLE


@pytest.mark.asyncio
async def test_remove_model_soft_deletes():
    registry = ModelRegistry(models=[model("m1"), model("m2")])

    assert registry.remove_model("m1")
    assert not registry.remove_model("missing")

    removed = registry.get_model("m1")
    assert not removed.is_active
    assert removed.status == ModelStatus.DISABLED
    assert [m.id for m in await registry.list_by_role(ModelRole.SCHEMA)] == ["m2"]


@pytest.mark.asyncio
async def test_stats_counts_active_models():
    registry = ModelRegistry(models=[
        model("m1", provider="anthropic"),
        model("m2", provider="openai", status=ModelStatus.CANARY),
        model("m3", role=ModelRole.RESEARCH, provider="openai"),
        model("m4", status=ModelStatus.DISABLED),
        model("gone", provider="openai", is_active=False),
    ])

    stats = await registry.stats()

    assert stats == {
        "total": 4,
        "by_status": {"stable": 2, "canary": 1, "disabled": 1},
        "by_role": {"schema": 3, "research": 1},
        "by_provider": {"anthropic": 1, "openai": 2, "unknown": 1},
    }


@pytest.mark.asyncio
async def test_from_file_refresh_rereads_catalog(tmp_path):
    catalog = tmp_path / "models.json"
    catalog.write_text(json.dumps([{"id": "m1", "name": "One", "role": "schema"}]))
    registry = ModelRegistry.from_file(catalog, cache_ttl_seconds=0)

    catalog.write_text(json.dumps([
        {"id": "m1", "name": "One", "role": "schema"},
        {"id": "m2", "name": "Two", "role": "schema"},
    ]))

    assert [m.id for m in await registry.list_by_role(ModelRole.SCHEMA)] == ["m1", "m2"]
