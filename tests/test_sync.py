"""Tests for the SyncEngine."""

import asyncio
import httpx
import pytest
import pytest_asyncio
from unittest.mock import MagicMock, patch

from sharednotes.errors import LocalStoreError, TransportFailure
from sharednotes.models import Note
from sharednotes.notes_client import NotesClient
from sharednotes.storage import NoteStore
from sharednotes.sync import RemoteUpdate, SyncEngine

from helpers import FakeNotesClient, offline, wait_until

INTERVAL = 0.05


@pytest.fixture
def store():
    """Create an in-memory NoteStore."""
    store = NoteStore(":memory:")
    store.connect()
    yield store
    store.close()


@pytest.fixture
def client():
    return FakeNotesClient()


@pytest_asyncio.fixture
async def engine(store, client):
    engine = SyncEngine(store, client, poll_interval=INTERVAL)
    yield engine
    await engine.close()


def record(live) -> list:
    received = []
    live.subscribe(received.append)
    return received


class TestGetSynced:
    """Tests for merging remote notes into the synced view."""

    @pytest.mark.asyncio
    async def test_remote_note_reaches_output(self, engine, store, client):
        client.notes["todo"] = Note(title="todo", content="from server", version=5)

        output = engine.get_synced("todo")
        await wait_until(lambda: output.value is not None)

        assert output.value == Note(title="todo", content="from server", version=5)
        assert store.find("todo") == output.value

    @pytest.mark.asyncio
    async def test_older_remote_ignored(self, engine, store, client):
        store.upsert(Note(title="todo", content="mine", version=3))
        client.notes["todo"] = Note(title="todo", content="theirs", version=2)

        output = engine.get_synced("todo")
        received = record(output)
        await wait_until(lambda: len(client.fetches) >= 2)

        assert store.find("todo") == Note(title="todo", content="mine", version=3)
        assert received == [Note(title="todo", content="mine", version=3)]

    @pytest.mark.asyncio
    async def test_equal_version_ignored(self, engine, store, client):
        store.upsert(Note(title="todo", content="mine", version=3))
        client.notes["todo"] = Note(title="todo", content="theirs", version=3)

        output = engine.get_synced("todo")
        received = record(output)
        await wait_until(lambda: len(client.fetches) >= 2)

        assert received == [Note(title="todo", content="mine", version=3)]

    @pytest.mark.asyncio
    async def test_newer_remote_stored_without_increment(self, engine, store, client):
        store.upsert(Note(title="todo", content="mine", version=3))
        client.notes["todo"] = Note(title="todo", content="theirs", version=7)

        output = engine.get_synced("todo")
        received = record(output)
        await wait_until(lambda: len(received) == 2)
        await wait_until(lambda: len(client.fetches) >= 3)

        assert store.find("todo") == Note(title="todo", content="theirs", version=7)
        assert [n.version for n in received] == [3, 7]

    @pytest.mark.asyncio
    async def test_local_writes_are_forwarded_immediately(self, engine, store):
        output = engine.get_synced("todo")
        received = record(output)

        engine.upsert_local(Note(title="todo", content="draft", version=0))

        assert received == [Note(title="todo", content="draft", version=1)]

    @pytest.mark.asyncio
    async def test_deletion_keeps_last_value(self, engine, store):
        note = engine.upsert_local(Note(title="todo", content="draft"))
        output = engine.get_synced("todo")

        engine.delete_local(note)

        assert output.value == note
        assert engine.exists_local("todo") is False

    @pytest.mark.asyncio
    async def test_fetch_failure_keeps_value_and_polling(self, store, client):
        store.upsert(Note(title="todo", content="mine", version=3))
        client.notes["todo"] = Note(title="todo", content="theirs", version=4)
        client.failures.append(offline())
        seen_at_failure = []
        engine = SyncEngine(
            store,
            client,
            poll_interval=INTERVAL,
            on_error=lambda title, error: seen_at_failure.append(output.value),
        )

        output = engine.get_synced("todo")
        await wait_until(lambda: output.value.version == 4)
        await engine.close()

        assert seen_at_failure == [Note(title="todo", content="mine", version=3)]
        assert len(client.fetches) >= 2

    @pytest.mark.asyncio
    async def test_stream_yields_synced_values(self, engine, client):
        client.notes["todo"] = Note(title="todo", content="from server", version=2)
        output = engine.get_synced("todo")

        stream = output.stream()
        first = await asyncio.wait_for(stream.__anext__(), timeout=1.0)
        await stream.aclose()

        assert first.version == 2


class TestTitleSwitch:
    """Tests for replacing the synced note."""

    @pytest.mark.asyncio
    async def test_switch_closes_previous_output(self, engine):
        first = engine.get_synced("A")

        second = engine.get_synced("B")

        assert first.closed is True
        assert second.closed is False
        assert engine.title == "B"

    @pytest.mark.asyncio
    async def test_switch_stops_previous_polling(self, engine, client):
        client.latency = INTERVAL / 2
        client.notes["A"] = Note(title="A", content="alpha", version=1)
        client.notes["B"] = Note(title="B", content="beta", version=1)

        engine.get_synced("A")
        await asyncio.sleep(INTERVAL * 1.2)
        engine.get_synced("B")
        switch_index = len(client.fetches)
        await asyncio.sleep(INTERVAL * 3)

        assert client.max_in_flight == 1
        assert set(client.fetches[:switch_index]) == {"A"}
        assert set(client.fetches[switch_index:]) == {"B"}
        assert engine.poller.generation == 2

    @pytest.mark.asyncio
    async def test_previous_output_gets_no_further_values(self, engine, store):
        first = engine.get_synced("A")
        received = record(first)
        engine.get_synced("B")

        engine.upsert_local(Note(title="A", content="late"))

        assert received == []

    @pytest.mark.asyncio
    async def test_stale_remote_update_is_discarded(self, engine, store):
        engine.get_synced("A")
        stale = engine.poller.token
        engine.get_synced("A")

        engine._remote.publish(RemoteUpdate(Note(title="A", content="stale", version=9), stale))

        assert store.find("A") is None

    @pytest.mark.asyncio
    async def test_store_subscriptions_released(self, engine, store):
        engine.get_synced("A")
        assert store.get("A").subscriber_count == 1

        engine.get_synced("B")

        assert store.get("A").subscriber_count == 0
        assert store.get("B").subscriber_count == 1


class TestUpsertSynced:
    """Tests for local-first writes."""

    @pytest.mark.asyncio
    async def test_increments_local_version_once(self, engine, store, client):
        saved = engine.upsert_synced(Note(title="todo", content="v2 text", version=1))

        assert saved.version == 2
        assert store.find("todo") == Note(title="todo", content="v2 text", version=2)
        assert client.puts == []

        await engine.wait_for_pending_writes()

        assert client.puts == [Note(title="todo", content="v2 text", version=2)]

    @pytest.mark.asyncio
    async def test_remote_failure_is_not_surfaced(self, engine, store, client):
        client.put_error = TransportFailure("HTTP 500", status_code=500)

        saved = engine.upsert_synced(Note(title="todo", content="text", version=1))
        await engine.wait_for_pending_writes()

        assert saved.version == 2
        assert store.find("todo").version == 2
        assert len(client.puts) == 1
        assert engine.pending_writes == 0

    @pytest.mark.asyncio
    async def test_upsert_remote_reports_outcome(self, engine, client):
        assert await engine.upsert_remote(Note(title="todo")) is True

        client.put_error = offline()
        assert await engine.upsert_remote(Note(title="todo")) is False

    @pytest.mark.asyncio
    async def test_newer_local_survives_stale_remote(self, engine, store, client):
        client.notes["todo"] = Note(title="todo", content="old", version=1)
        output = engine.get_synced("todo")
        await wait_until(lambda: output.value is not None)

        client.put_error = offline()
        engine.upsert_synced(output.value.with_content("new"))
        fetches = len(client.fetches)
        await wait_until(lambda: len(client.fetches) >= fetches + 2)

        assert output.value == Note(title="todo", content="new", version=2)

    @pytest.mark.asyncio
    async def test_local_store_failure_propagates(self, engine, store):
        with patch.object(store, "upsert", side_effect=LocalStoreError("disk full")):
            with pytest.raises(LocalStoreError):
                engine.upsert_synced(Note(title="todo"))


class TestEngineFailures:
    """Tests for fatal local store errors during merges."""

    @pytest.mark.asyncio
    async def test_merge_store_failure_fails_output(self, store, client):
        client.notes["todo"] = Note(title="todo", content="theirs", version=1)
        engine = SyncEngine(store, client, poll_interval=INTERVAL)

        with patch.object(store, "upsert", side_effect=LocalStoreError("disk full")):
            output = engine.get_synced("todo")

            with pytest.raises(LocalStoreError, match="disk full"):
                async for _ in output.stream():
                    pass

        await engine.close()

    @pytest.mark.asyncio
    async def test_close_stops_everything(self, store, client):
        engine = SyncEngine(store, client, poll_interval=INTERVAL)
        output = engine.get_synced("todo")
        engine.upsert_synced(Note(title="todo"))

        await engine.close()

        assert output.closed is True
        assert engine.title is None
        assert engine.pending_writes == 0
        fetches = len(client.fetches)
        await asyncio.sleep(INTERVAL * 2)
        assert len(client.fetches) == fetches

    def test_poll_errors_use_custom_reporter(self, store, client):
        reporter = MagicMock()
        engine = SyncEngine(store, client, on_error=reporter)

        assert engine.poller._on_error is reporter


class TestUnsendableTitles:
    """Tests for titles the HTTP client cannot address."""

    @pytest.mark.asyncio
    async def test_polling_survives_unsendable_title(self, store):
        reported = []
        client = NotesClient(
            "https://notes.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(200)),
        )
        engine = SyncEngine(
            store,
            client,
            poll_interval=INTERVAL,
            on_error=lambda title, error: reported.append(error),
        )

        engine.get_synced("a" * 70000)
        await wait_until(lambda: len(reported) >= 2)

        assert all(isinstance(error, TransportFailure) for error in reported)
        assert not engine.poller._task.done()
        await engine.close()
        await client.close()

    @pytest.mark.asyncio
    async def test_write_with_unsendable_title_is_not_surfaced(self, store):
        client = NotesClient(
            "https://notes.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(200)),
        )
        engine = SyncEngine(store, client, poll_interval=INTERVAL)

        saved = engine.upsert_synced(Note(title="a" * 70000))
        await engine.wait_for_pending_writes()

        assert saved.version == 1
        assert store.find("a" * 70000).version == 1
        await engine.close()
        await client.close()


class TestGetSyncedWithoutLoop:
    """Tests for get_synced() outside a running event loop."""

    def test_failure_leaves_nothing_attached(self, store, client):
        engine = SyncEngine(store, client, poll_interval=INTERVAL)

        with pytest.raises(RuntimeError):
            engine.get_synced("todo")

        assert engine.title is None
        assert engine._subscriptions == []
        assert "todo" not in store._live
