import json

import httpx
import pytest

from ediary.client.api_client import DiaryApiClient
from ediary.client.entry_repository import EntryRepository
from ediary.client.local_store import entries_key_for, trash_key_for
from ediary.client.sync_mode import SyncMode
from ediary.models.diary import Mood
from ediary.models.user import Session, User
from ediary.utils.errors import AuthRequired, NetworkFailure, NotFound, ValidationError


def local_session(email="writer@example.com"):
    return Session(user=User(id="user-1", email=email), identity=email)


@pytest.fixture
async def repo(store):
    repository = EntryRepository(store)
    await repository.load(local_session())
    return repository


async def test_add_inserts_at_head_with_generated_fields(repo):
    first = await repo.add(title="First", content="one")
    second = await repo.add(title="  Second  ", content="  two  ", mood="happy")

    assert [e.id for e in repo.entries] == [second.id, first.id]
    assert second.title == "Second"
    assert second.content == "two"
    assert second.mood == Mood.HAPPY
    assert first.mood == Mood.CALM
    assert first.id.startswith("entry-")
    assert first.created_at is not None


async def test_local_ids_are_unique_within_a_millisecond(repo):
    ids = [(await repo.add(title=f"Quick {n}", content="burst")).id for n in range(5)]

    assert len(set(ids)) == 5


async def test_add_keeps_supplied_id(repo):
    entry = await repo.add(title="Imported", content="text", entry_id="entry-42")

    assert entry.id == "entry-42"
    assert repo.get_entry("entry-42") == entry


async def test_add_requires_title_and_content(repo):
    with pytest.raises(ValidationError):
        await repo.add(title="   ", content="text")
    with pytest.raises(ValidationError):
        await repo.add(title="title", content="text", mood="bored")
    assert repo.entries == []


async def test_update_merges_and_trims(repo):
    entry = await repo.add(title="Draft", content="body")

    updated = await repo.update(entry.id, title=" Final ", mood="sad", image_uri="file:///a.png")

    assert updated.title == "Final"
    assert updated.content == "body"
    assert updated.mood == Mood.SAD
    assert updated.image_uri == "file:///a.png"
    assert repo.get_entry(entry.id).title == "Final"


async def test_update_unknown_entry(repo):
    with pytest.raises(NotFound):
        await repo.update("missing", title="x")


async def test_soft_delete_then_recover_is_lossless(repo):
    entry = await repo.add(title="Travel", content="Worth it", mood="angry", image_uri="file:///b.png")

    trashed = await repo.soft_delete(entry.id)
    assert trashed.trashed_at is not None
    assert repo.entries == []
    assert [e.id for e in repo.trash_entries] == [entry.id]

    recovered = await repo.recover(entry.id)
    assert recovered.trashed_at is None
    assert recovered == entry
    assert repo.trash_entries == []
    assert repo.entries == [entry]


async def test_entry_is_never_in_both_lists(repo):
    entry = await repo.add(title="Once", content="only")
    await repo.soft_delete(entry.id)

    with pytest.raises(NotFound):
        await repo.soft_delete(entry.id)
    with pytest.raises(NotFound):
        await repo.update(entry.id, title="x")
    assert repo.get_entry(entry.id) is None


async def test_recover_puts_entry_at_head(repo):
    old = await repo.add(title="Old", content="a")
    await repo.add(title="New", content="b")
    await repo.soft_delete(old.id)

    await repo.recover(old.id)

    assert repo.entries[0].id == old.id


async def test_trash_is_most_recently_trashed_first(repo):
    a = await repo.add(title="A", content="a")
    b = await repo.add(title="B", content="b")

    await repo.soft_delete(a.id)
    await repo.soft_delete(b.id)

    assert [e.id for e in repo.trash_entries] == [b.id, a.id]


async def test_permanently_delete_cannot_be_recovered(repo):
    entry = await repo.add(title="Gone", content="for good")
    await repo.soft_delete(entry.id)

    await repo.permanently_delete(entry.id)

    assert repo.trash_entries == []
    with pytest.raises(NotFound):
        await repo.recover(entry.id)
    with pytest.raises(NotFound):
        await repo.permanently_delete(entry.id)


async def test_permanently_delete_requires_trashed_entry(repo):
    entry = await repo.add(title="Active", content="still here")

    with pytest.raises(NotFound):
        await repo.permanently_delete(entry.id)


async def test_empty_trash(repo):
    keep = await repo.add(title="Keep", content="me")
    for title in ("One", "Two"):
        entry = await repo.add(title=title, content="x")
        await repo.soft_delete(entry.id)

    assert await repo.empty_trash() == 2
    assert repo.trash_entries == []
    assert [e.id for e in repo.entries] == [keep.id]


async def test_mutations_are_persisted(store, repo):
    entry = await repo.add(title="Persist", content="me")
    trashed = await repo.add(title="Trash", content="me")
    await repo.soft_delete(trashed.id)

    reloaded = EntryRepository(store)
    await reloaded.load(local_session())

    assert [e.id for e in reloaded.entries] == [entry.id]
    assert [e.id for e in reloaded.trash_entries] == [trashed.id]
    assert reloaded.trash_entries[0].trashed_at is not None


async def test_new_identity_starts_empty_and_admin_gets_seed(store):
    repository = EntryRepository(store)

    assert await repository.load(local_session("new@example.com")) == []

    seeded = await repository.load(Session(user=User(id="user-admin", email="admin"), identity="admin"))
    assert len(seeded) == 5
    assert seeded[0].id == "entry-1"
    assert {e.mood for e in seeded} == set(Mood)


async def test_corrupt_storage_falls_back(store):
    store.multi_set([
        (entries_key_for("writer@example.com"), "{not json"),
        (trash_key_for("writer@example.com"), '{"an": "object"}'),
    ])
    repository = EntryRepository(store)

    assert await repository.load(local_session()) == []
    assert repository.trash_entries == []


async def test_partially_corrupt_storage_keeps_valid_entries(store):
    store.set_item(entries_key_for("writer@example.com"), json.dumps([
        {"id": "a", "mood": "happy", "title": "Kept", "content": "fine", "createdAt": "2025-10-01T08:00:00Z"},
        {"id": "b", "mood": "", "title": "No mood", "content": "x", "createdAt": "2025-10-02T08:00:00Z"},
        {"id": "c", "mood": "bored", "title": "Odd mood", "content": "y", "createdAt": "2025-10-03T08:00:00Z"},
        {"id": "d", "mood": "sad", "content": "missing title"},
        "not an entry",
    ]))
    repository = EntryRepository(store)

    loaded = await repository.load(local_session())

    assert [e.id for e in loaded] == ["a", "b", "c"]
    assert [e.mood for e in loaded] == [Mood.HAPPY, Mood.CALM, Mood.CALM]

    await repository.add(title="New", content="entry")
    reloaded = EntryRepository(store)
    assert [e.id for e in await reloaded.load(local_session())][1:] == ["a", "b", "c"]


async def test_load_none_clears_state(repo):
    await repo.add(title="Private", content="data")

    await repo.load(None)

    assert repo.entries == []
    assert repo.is_ready is True


async def test_migrate_moves_lists_to_new_identity(store, repo):
    entry = await repo.add(title="Mine", content="still mine")
    trashed = await repo.add(title="Old", content="trash")
    await repo.soft_delete(trashed.id)

    repo.migrate("writer@example.com", "renamed@example.com")

    assert store.get_item(entries_key_for("writer@example.com")) is None
    assert store.get_item(trash_key_for("writer@example.com")) is None
    migrated = EntryRepository(store)
    await migrated.load(local_session("renamed@example.com"))
    assert [e.id for e in migrated.entries] == [entry.id]
    assert [e.id for e in migrated.trash_entries] == [trashed.id]


async def test_migrate_keeps_existing_destination(store, repo):
    await repo.add(title="Source", content="a")
    other = EntryRepository(store)
    await other.load(local_session("taken@example.com"))
    existing = await other.add(title="Destination", content="b")

    repo.migrate("writer@example.com", "taken@example.com")

    await other.load(local_session("taken@example.com"))
    assert [e.id for e in other.entries] == [existing.id]


# ===== 远程 / 混合模式 =====


async def test_remote_mode_without_token_requires_auth(store, offline_api_client):
    repository = EntryRepository(store, offline_api_client, SyncMode.REMOTE)

    with pytest.raises(AuthRequired):
        await repository.load(local_session())
    with pytest.raises(AuthRequired):
        await repository.soft_delete("entry-1")


async def test_hybrid_mode_without_token_uses_local_storage(store, offline_api_client):
    repository = EntryRepository(store, offline_api_client, SyncMode.HYBRID)
    await repository.load(local_session())
    entry = await repository.add(title="Offline", content="works")

    trashed = await repository.soft_delete(entry.id)

    assert trashed.is_trashed


async def test_hybrid_mode_falls_back_when_server_unreachable(store, offline_api_client):
    session = local_session().model_copy(update={"token": "stale-token"})
    repository = EntryRepository(store, offline_api_client, SyncMode.HYBRID)

    await repository.load(session)
    entry = await repository.add(title="Queued", content="locally")
    await repository.soft_delete(entry.id)
    await repository.recover(entry.id)

    assert [e.id for e in repository.entries] == [entry.id]
    assert store.get_item(entries_key_for("writer@example.com")) is not None


async def test_remote_mode_propagates_network_failure(store, offline_api_client):
    session = local_session().model_copy(update={"token": "stale-token"})
    repository = EntryRepository(store, offline_api_client, SyncMode.REMOTE)

    with pytest.raises(NetworkFailure):
        await repository.load(session)


async def remote_session(api_client):
    token, user = await api_client.register("sync@example.com", "secret123", "syncer01")
    return Session(user=user, identity=user.email, token=token)


async def test_hybrid_mode_syncs_with_server(store, api_client):
    session = await remote_session(api_client)
    repository = EntryRepository(store, api_client, SyncMode.HYBRID)
    await repository.load(session)

    entry = await repository.add(title="Synced", content="to server", mood="love")
    await repository.update(entry.id, content="edited")

    server_entries = await api_client.list_entries(session.token)
    assert [e.id for e in server_entries] == [entry.id]
    assert server_entries[0].content == "edited"
    assert server_entries[0].mood == Mood.LOVE

    await repository.soft_delete(entry.id)
    assert [e.id for e in await api_client.list_trash(session.token)] == [entry.id]

    fresh = EntryRepository(store, api_client, SyncMode.HYBRID)
    await fresh.load(session)
    assert fresh.entries == []
    assert [e.id for e in fresh.trash_entries] == [entry.id]


async def test_remote_recover_restores_creation_order(store, api_client):
    session = await remote_session(api_client)
    repository = EntryRepository(store, api_client, SyncMode.REMOTE)
    await repository.load(session)

    oldest = await repository.add(title="Oldest", content="1")
    middle = await repository.add(title="Middle", content="2")
    await repository.add(title="Newest", content="3")
    await repository.soft_delete(middle.id)
    await repository.soft_delete(oldest.id)

    await repository.recover(middle.id)
    await repository.recover(oldest.id)

    created = [e.created_at for e in repository.entries]
    assert created == sorted(created, reverse=True)
    assert repository.entries[-1].id == oldest.id


async def test_remote_empty_trash_deletes_on_server(store, api_client):
    session = await remote_session(api_client)
    repository = EntryRepository(store, api_client, SyncMode.REMOTE)
    await repository.load(session)
    for title in ("One", "Two"):
        entry = await repository.add(title=title, content="x")
        await repository.soft_delete(entry.id)

    assert await repository.empty_trash() == 2

    assert await api_client.list_trash(session.token) == []


async def test_remote_not_found_is_surfaced(store, api_client):
    session = await remote_session(api_client)
    repository = EntryRepository(store, api_client, SyncMode.HYBRID)
    await repository.load(session)
    entry = await repository.add(title="Here", content="now")
    await api_client.delete_entry(session.token, entry.id)
    await api_client.permanently_delete_entry(session.token, entry.id)

    with pytest.raises(NotFound):
        await repository.update(entry.id, title="changed elsewhere")


async def test_hybrid_load_with_rejected_token_uses_local_entries(store, api_client):
    local = EntryRepository(store)
    await local.load(local_session())
    entry = await local.add(title="Written offline", content="still here")
    expired = local_session().model_copy(update={"token": "expired-or-forged"})
    repository = EntryRepository(store, api_client, SyncMode.HYBRID)

    loaded = await repository.load(expired)

    assert [e.id for e in loaded] == [entry.id]
    updated = await repository.update(entry.id, title="Edited anyway")
    assert updated.title == "Edited anyway"


async def test_remote_load_with_rejected_token_raises(store, api_client):
    expired = local_session().model_copy(update={"token": "expired-or-forged"})
    repository = EntryRepository(store, api_client, SyncMode.REMOTE)

    with pytest.raises(AuthRequired):
        await repository.load(expired)


async def test_hybrid_load_falls_back_on_server_error(store):
    def broken(request):
        return httpx.Response(500, json={"message": "Internal server error"})

    local = EntryRepository(store)
    await local.load(local_session())
    entry = await local.add(title="Safe", content="on disk")
    session = local_session().model_copy(update={"token": "token"})
    client = DiaryApiClient(base_url="http://broken/api", transport=httpx.MockTransport(broken))
    repository = EntryRepository(store, client, SyncMode.HYBRID)

    assert [e.id for e in await repository.load(session)] == [entry.id]


async def test_offline_entries_are_pushed_when_server_returns(store, api_client, offline_api_client):
    session = await remote_session(api_client)
    repository = EntryRepository(store, api_client, SyncMode.HYBRID)
    await repository.load(session)

    repository.api_client = offline_api_client
    kept = await repository.add(title="Offline note", content="saved without network")
    trashed = await repository.add(title="Offline mistake", content="thrown away")
    await repository.soft_delete(trashed.id)
    await repository.update(kept.id, content="edited without network")
    assert kept.id.startswith("entry-")

    repository.api_client = api_client
    await repository.load(session)

    server_entries = await api_client.list_entries(session.token)
    server_trash = await api_client.list_trash(session.token)
    assert [e.content for e in server_entries] == ["edited without network"]
    assert [e.title for e in server_trash] == ["Offline mistake"]
    assert [e.id for e in repository.entries] == [e.id for e in server_entries]
    assert [e.id for e in repository.trash_entries] == [e.id for e in server_trash]

    await repository.load(session)
    assert len(await api_client.list_entries(session.token)) == 1
    assert len(repository.entries) == 1
