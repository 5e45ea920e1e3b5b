"""
Тесты хранилища: backend в памяти и SQLite, уведомления об изменениях
"""
import json
import sqlite3

import pytest

from db.backends import MemoryBackend, SqliteBackend, StorageError
from db.models import Message
from db.store import PersistentStore, MESSAGES_KEY, BLOCKED_USERS_KEY


def make_message(message_id="1_abc", user_id=2, text="hello"):
    return Message(
        id=message_id,
        user_id=user_id,
        username="user1",
        name="Dimple",
        role="user",
        text=text,
        timestamp=1_700_000_000.0
    )


@pytest.mark.asyncio
async def test_empty_store_reads_empty(store):
    assert await store.read_messages() == []
    assert await store.read_blocked() == []


@pytest.mark.asyncio
async def test_write_and_read_messages(store):
    message = make_message()
    await store.write_messages([message])
    assert await store.read_messages() == [message]


@pytest.mark.asyncio
async def test_messages_stored_as_json(store, backend):
    await store.write_messages([make_message(text="привет")])
    raw = await backend.get(MESSAGES_KEY)
    data = json.loads(raw)
    assert data[0]["text"] == "привет"
    assert data[0]["edited_at"] is None


@pytest.mark.asyncio
async def test_blocked_independent_of_messages(store):
    await store.write_messages([make_message()])
    await store.write_blocked([3])
    assert await store.read_blocked() == [3]
    assert len(await store.read_messages()) == 1


@pytest.mark.asyncio
async def test_write_notifies_observers(store):
    keys = []
    store.add_observer(keys.append)

    await store.write_messages([])
    await store.write_blocked([2])
    assert keys == [MESSAGES_KEY, BLOCKED_USERS_KEY]


@pytest.mark.asyncio
async def test_removed_observer_not_notified(store):
    keys = []
    remove = store.add_observer(keys.append)
    remove()
    await store.write_messages([])
    assert keys == []


@pytest.mark.asyncio
async def test_unavailable_backend_raises(store, backend):
    backend.available = False
    with pytest.raises(StorageError):
        await store.read_messages()
    with pytest.raises(StorageError):
        await store.write_messages([])


@pytest.mark.asyncio
async def test_corrupted_record_raises(store, backend):
    await backend.set(MESSAGES_KEY, "{not json")
    with pytest.raises(StorageError):
        await store.read_messages()


@pytest.mark.asyncio
async def test_external_change_detected():
    """Запись из второго окна того же клиента видна первому после проверки"""
    shared = MemoryBackend()
    first = PersistentStore(shared)
    second = PersistentStore(shared)

    keys = []
    first.add_observer(keys.append)
    assert await first.check_external_changes() is False

    await second.write_messages([make_message()])
    assert await first.check_external_changes() is True
    assert keys == [None]

    # Повторная проверка без новых записей ничего не сообщает
    assert await first.check_external_changes() is False


@pytest.mark.asyncio
async def test_own_write_not_external():
    shared = MemoryBackend()
    store = PersistentStore(shared)
    await store.check_external_changes()
    await store.write_messages([make_message()])
    assert await store.check_external_changes() is False


@pytest.mark.asyncio
async def test_sqlite_backend_roundtrip(sqlite_path):
    backend = SqliteBackend(sqlite_path)
    await backend.open()
    try:
        store = PersistentStore(backend)
        await store.write_messages([make_message()])
        await store.write_blocked([3, 4])

        assert [m.id for m in await store.read_messages()] == ["1_abc"]
        assert await store.read_blocked() == [3, 4]
    finally:
        await backend.close()

    # Данные пережили переоткрытие
    conn = sqlite3.connect(sqlite_path)
    cursor = conn.cursor()
    cursor.execute("SELECT key FROM records ORDER BY key")
    assert [row[0] for row in cursor.fetchall()] == [BLOCKED_USERS_KEY, MESSAGES_KEY]
    conn.close()


@pytest.mark.asyncio
async def test_sqlite_external_write_detected(sqlite_path):
    """Запись другим соединением меняет PRAGMA data_version"""
    first = SqliteBackend(sqlite_path)
    second = SqliteBackend(sqlite_path)
    await first.open()
    await second.open()
    try:
        watcher = PersistentStore(first)
        writer = PersistentStore(second)
        keys = []
        watcher.add_observer(keys.append)

        await watcher.check_external_changes()
        await writer.write_blocked([5])

        assert await watcher.check_external_changes() is True
        assert keys == [None]
        assert await watcher.read_blocked() == [5]
    finally:
        await first.close()
        await second.close()


@pytest.mark.asyncio
async def test_sqlite_backend_not_open(sqlite_path):
    backend = SqliteBackend(sqlite_path)
    with pytest.raises(StorageError):
        await backend.get(MESSAGES_KEY)
