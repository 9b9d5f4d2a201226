import asyncio
import json

import pytest

from dal.local_storage_dal import LocalStorageDAL
from models.session_models import ASSISTANT_ROLE, USER_ROLE, AppMode, ChatSession, Message
from services.session_store import IMAGES_KEY, SESSIONS_KEY, SessionStore
from utils.database_init import AsyncDatabaseInitializer


class TestModels:
    def test_message_rejects_unknown_role(self):
        with pytest.raises(ValueError):
            Message.create("system", "hi")

    def test_legacy_model_role_reads_as_assistant(self):
        message = Message.from_dict({"id": "m1", "role": "model", "content": "hey", "timestamp": 5})
        assert message.role == ASSISTANT_ROLE
        assert message.content == "hey"

    def test_with_content_leaves_original_untouched(self):
        original = Message.create(ASSISTANT_ROLE, "")
        updated = original.with_content("text")
        assert original.content == ""
        assert updated.content == "text"
        assert updated.id == original.id

    def test_session_serializes_camel_case_timestamps(self):
        session = ChatSession.create(AppMode.CODE)
        data = session.to_dict()
        assert data["mode"] == "CODE"
        assert data["title"] == "New Chat"
        assert data["createdAt"] == session.created_at
        assert data["updatedAt"] == session.updated_at
        assert ChatSession.from_dict(data) == session

    def test_voice_type_survives_serialization(self):
        message = Message.create(USER_ROLE, "spoken", kind="voice")
        assert message.to_dict()["type"] == "voice"
        assert Message.from_dict(message.to_dict()).type == "voice"
        assert "type" not in Message.create(USER_ROLE, "typed").to_dict()


class TestSessionStore:
    @pytest.mark.asyncio
    async def test_empty_storage_reads_as_no_sessions(self, store):
        assert await store.get_sessions() == []
        assert await store.get_images() == []

    @pytest.mark.asyncio
    async def test_create_session_goes_in_front(self, store):
        first = await store.create_session(AppMode.CHAT)
        second = await store.create_session(AppMode.CODE)
        sessions = await store.get_sessions()
        assert [s.id for s in sessions] == [second.id, first.id]
        assert sessions[0].mode is AppMode.CODE

    @pytest.mark.asyncio
    async def test_invalid_json_is_treated_as_empty(self, storage, store, caplog):
        storage.items[SESSIONS_KEY] = "{not json"
        assert await store.get_sessions() == []
        assert "not valid JSON" in caplog.text

    @pytest.mark.asyncio
    async def test_non_list_blob_is_treated_as_empty(self, storage, store):
        storage.items[SESSIONS_KEY] = json.dumps({"id": "x"})
        assert await store.get_sessions() == []

    @pytest.mark.asyncio
    async def test_update_session_replaces_and_stamps(self, store):
        session = await store.create_session(AppMode.CHAT)
        changed = session.with_messages((Message.create(USER_ROLE, "hello"),), title="hello", updated_at=0)
        stored = await store.update_session(changed)
        assert stored is not None
        assert stored.updated_at > 0
        reloaded = await store.get_session(session.id)
        assert reloaded.title == "hello"
        assert [m.content for m in reloaded.messages] == ["hello"]

    @pytest.mark.asyncio
    async def test_update_missing_session_is_skipped(self, storage, store):
        ghost = ChatSession.create(AppMode.CHAT)
        assert await store.update_session(ghost) is None
        assert SESSIONS_KEY not in storage.items

    @pytest.mark.asyncio
    async def test_delete_session(self, store):
        keep = await store.create_session(AppMode.CHAT)
        drop = await store.create_session(AppMode.CHAT)
        await store.delete_session(drop.id)
        assert [s.id for s in await store.get_sessions()] == [keep.id]

    @pytest.mark.asyncio
    async def test_reads_never_share_structure(self, store):
        await store.create_session(AppMode.CHAT)
        first = await store.get_sessions()
        second = await store.get_sessions()
        assert first == second
        assert first is not second
        assert first[0] is not second[0]

    @pytest.mark.asyncio
    async def test_save_image_prepends_records(self, storage, store):
        older = await store.save_image("a cat", "nova-ai-1.png", record_id="1")
        newer = await store.save_image("a dog", "nova-ai-2.png", record_id="2")
        images = await store.get_images()
        assert [r.id for r in images] == [newer.id, older.id]
        assert json.loads(storage.items[IMAGES_KEY])[0]["prompt"] == "a dog"
        assert (await store.get_image("1")).url == "nova-ai-1.png"
        assert await store.get_image("missing") is None


class TestLocalStorage:
    def test_missing_database_dir_is_fatal(self, monkeypatch):
        monkeypatch.delenv("DATABASE_DIR", raising=False)
        with pytest.raises(RuntimeError):
            AsyncDatabaseInitializer()

    def test_database_dir_must_not_be_a_file(self, tmp_path):
        target = tmp_path / "taken"
        target.write_text("x")
        with pytest.raises(RuntimeError):
            AsyncDatabaseInitializer(str(target))

    @pytest.mark.asyncio
    async def test_items_round_trip_and_survive_restart(self, tmp_path):
        initializer = AsyncDatabaseInitializer(str(tmp_path / "db"))
        await initializer.ensure_database()
        dal = LocalStorageDAL(initializer)

        assert await dal.get_item("k") is None
        await dal.set_item("k", "one")
        await dal.set_item("k", "two")
        assert await dal.get_item("k") == "two"

        restarted = AsyncDatabaseInitializer(str(tmp_path / "db"))
        await restarted.ensure_database()
        assert await LocalStorageDAL(restarted).get_item("k") == "two"

    @pytest.mark.asyncio
    async def test_session_store_over_sqlite(self, tmp_path):
        initializer = AsyncDatabaseInitializer(str(tmp_path / "db"))
        await initializer.ensure_database()
        store = SessionStore(LocalStorageDAL(initializer))
        session = await store.create_session(AppMode.IMAGE)
        assert (await store.get_session(session.id)).mode is AppMode.IMAGE
        assert initializer.images_dir.is_dir()

    @pytest.mark.asyncio
    async def test_concurrent_writes_over_sqlite_are_not_lost(self, tmp_path):
        initializer = AsyncDatabaseInitializer(str(tmp_path / "db"))
        await initializer.ensure_database()
        store = SessionStore(LocalStorageDAL(initializer))

        saved = await asyncio.gather(
            *(store.save_image(f"prompt {n}", f"nova-ai-{n}.png", record_id=str(n)) for n in range(5))
        )
        created = await asyncio.gather(*(store.create_session(AppMode.CHAT) for _ in range(4)))

        assert sorted(r.id for r in await store.get_images()) == sorted(r.id for r in saved)
        assert {s.id for s in await store.get_sessions()} == {s.id for s in created}

        restarted = SessionStore(LocalStorageDAL(AsyncDatabaseInitializer(str(tmp_path / "db"))))
        assert len(await restarted.get_images()) == 5
        assert len(await restarted.get_sessions()) == 4

    @pytest.mark.asyncio
    async def test_concurrent_updates_and_deletes_keep_every_change(self, store):
        sessions = [await store.create_session(AppMode.CHAT) for _ in range(3)]
        doomed = await store.create_session(AppMode.CODE)

        await asyncio.gather(
            *(store.update_session(s.with_messages((Message.create(USER_ROLE, s.id),))) for s in sessions),
            store.delete_session(doomed.id),
        )

        stored = {s.id: s for s in await store.get_sessions()}
        assert set(stored) == {s.id for s in sessions}
        assert all(stored[s.id].messages[0].content == s.id for s in sessions)
