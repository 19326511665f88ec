import asyncio

import pytest

from remitos.config_store import CUSTOMIZATIONS_PATH, DEFAULTS_PATH, ColumnConfigStore, ConfigDraft
from remitos.controller import TableController
from remitos.errors import SaveConfigError
from remitos.fetcher import RemitoFetcher
from remitos.report import ReportClient

STANDARD = {
    "version": "1.0",
    "client": "standard",
    "lastModified": "2024-01-01T00:00:00Z",
    "table": {
        "dbColumns": [
            {"field": "SDHNUM_0", "label": "Remito", "position": 0},
            {"field": "DLVDAT_0", "label": "Fecha", "position": 1},
            {"field": "XX6FLSIGN_0", "label": "Firmado", "position": 2, "filterType": "select"},
        ],
        "settings": {"defaultPageSize": 50},
    },
}

SPECIFIC = {
    "version": "1.0",
    "client": "specific",
    "table": {
        "columnOverrides": {"XX6FLSIGN_0": {"visible": False}},
        "customFilters": [],
        "settings": {},
    },
}


def _store(backend):
    return ColumnConfigStore(backend.client())


def test_load_merges_both_documents(backend):
    backend.documents[DEFAULTS_PATH] = STANDARD
    backend.documents[CUSTOMIZATIONS_PATH] = SPECIFIC

    async def scenario():
        store = _store(backend)
        async with store.client:
            merged = await store.load()
        return store, merged

    store, merged = asyncio.run(scenario())

    assert store.ready is True
    assert merged.fields() == ["SDHNUM_0", "DLVDAT_0", "XX6FLSIGN_0"]
    assert merged.column("XX6FLSIGN_0").visible is False
    assert store.current_fields() == ["SDHNUM_0", "DLVDAT_0"]


def test_failed_documents_are_treated_as_absent(backend):
    backend.documents[CUSTOMIZATIONS_PATH] = SPECIFIC

    async def scenario():
        store = _store(backend)
        async with store.client:
            await store.load()
        return store

    store = asyncio.run(scenario())

    assert store.standard is None
    assert store.specific is not None
    # Specific-only: the single override becomes the whole column set.
    assert store.merged.fields() == ["XX6FLSIGN_0"]


def test_malformed_override_counts_as_absent(backend):
    backend.documents[DEFAULTS_PATH] = STANDARD
    backend.documents[CUSTOMIZATIONS_PATH] = {
        "table": {"columnOverrides": {"SDHNUM_0": {"position": "abc"}}},
    }

    async def scenario():
        store = _store(backend)
        async with store.client:
            merged = await store.load()
        return store, merged

    store, merged = asyncio.run(scenario())

    assert store.ready is True
    assert store.specific is None
    assert merged.fields() == ["SDHNUM_0", "DLVDAT_0", "XX6FLSIGN_0"]


def test_nothing_loaded_falls_back_to_default_columns(backend):
    async def scenario():
        store = _store(backend)
        async with store.client:
            merged = await store.load()
        return store, merged

    store, merged = asyncio.run(scenario())

    assert merged is None
    assert store.current_fields() == ["SDHNUM_0", "DLVDAT_0", "BPCORD_0", "BPDNAM_0", "XX6FLSIGN_0"]


def test_save_posts_overrides_and_notifies_listeners(backend):
    backend.documents[DEFAULTS_PATH] = STANDARD
    notified = []

    async def listener(merged):
        notified.append(merged.fields())

    async def scenario():
        store = _store(backend)
        async with store.client:
            await store.load()
            store.on_config_changed(listener)
            draft = store.begin_edit()
            draft.set("DLVDAT_0", label="Entrega", visible=False)
            draft.reorder("XX6FLSIGN_0", "SDHNUM_0", "before")
            await store.save(draft)
        return store

    store = asyncio.run(scenario())

    posted = backend.posted[-1]
    overrides = posted["table"]["columnOverrides"]
    assert overrides["DLVDAT_0"]["label"] == "Entrega"
    assert overrides["DLVDAT_0"]["visible"] is False
    assert overrides["XX6FLSIGN_0"]["position"] == 0
    assert posted["lastModified"]
    assert notified == [["XX6FLSIGN_0", "SDHNUM_0", "DLVDAT_0"]]
    assert store.current_fields() == ["XX6FLSIGN_0", "SDHNUM_0"]


def test_failed_save_raises_and_keeps_state(backend):
    backend.documents[DEFAULTS_PATH] = STANDARD
    backend.post_status = 500
    notified = []

    async def scenario():
        store = _store(backend)
        async with store.client:
            await store.load()
            store.on_config_changed(notified.append)
            draft = store.begin_edit()
            draft.set("SDHNUM_0", label="Nro")
            with pytest.raises(SaveConfigError):
                await store.save(draft)
        return store, draft

    store, draft = asyncio.run(scenario())

    assert notified == []
    assert store.specific is None
    assert draft.edits == {"SDHNUM_0": {"label": "Nro"}}


def test_unsubscribe_stops_notifications(backend):
    backend.documents[DEFAULTS_PATH] = STANDARD
    notified = []

    async def scenario():
        store = _store(backend)
        async with store.client:
            unsubscribe = store.on_config_changed(notified.append)
            await store.load()
            unsubscribe()
            await store.apply_sql_columns(["SDHNUM_0", "CPY_0"])
        return store

    store = asyncio.run(scenario())

    assert len(notified) == 1
    assert store.merged.fields() == ["SDHNUM_0", "CPY_0"]
    assert store.current_fields() == ["SDHNUM_0"]


def test_draft_rejects_unknown_edits():
    with pytest.raises(ValueError):
        ConfigDraft([]).set("SDHNUM_0", colour="red")


def test_config_change_refreshes_controller(backend, view, clock):
    backend.documents[DEFAULTS_PATH] = STANDARD

    async def scenario():
        client = backend.client()
        store = ColumnConfigStore(client)
        fetcher = RemitoFetcher(client, columns_provider=store.current_fields)
        controller = TableController(
            view,
            fetcher,
            columns_provider=store.current_columns,
            reports=ReportClient(client),
            clock=clock,
        )
        store.on_config_changed(controller.refresh_table_config)
        async with client:
            await store.load()
            await controller.search("AR1", "F01")
            controller.state.text_filters["BPDNAM_0"] = "norte"
            header = view.header

            draft = store.begin_edit()
            draft.set("XX6FLSIGN_0", visible=False)
            await store.save(draft)
        return controller, header

    controller, header = asyncio.run(scenario())

    assert view.header is not header
    assert view.header["cells"] == ["SDHNUM_0", "DLVDAT_0"]
    assert controller.state.text_filters == {}
    assert backend.graphql_calls[-1]["columns"] == ["SDHNUM_0", "DLVDAT_0"]
