import httpx
import pytest

from ediary.client.api_client import DiaryApiClient
from ediary.client.credential_store import SESSION_KEY
from ediary.client.diary_app import DiaryApp
from ediary.client.entry_repository import EntryRepository
from ediary.client.sync_mode import SyncMode
from ediary.models.user import Session, User
from ediary.utils.errors import (
    AuthRequired, DiaryError, InvalidCredentials, NetworkFailure, NotFound, ValidationError,
)


@pytest.fixture
async def app(store):
    diary_app = DiaryApp(store)
    await diary_app.start()
    return diary_app


async def test_start_without_session(app):
    assert app.session is None
    assert app.diary.is_ready
    assert app.diary.entries == []


async def test_admin_login_loads_seed_entries(app):
    await app.login("admin", username="01234567890")

    assert len(app.diary.entries) == 5
    assert (await app.stats()).total_entries == 5


async def test_logout_clears_entries(app):
    await app.login("admin", username="01234567890")

    await app.logout()

    assert app.session is None
    assert app.diary.entries == []


async def test_entries_follow_email_change(store, app):
    await app.signup("old@example.com", "pass", "writer")
    entry = await app.diary.add(title="Keep me", content="across renames")

    session = await app.update_profile(email="new@example.com")

    assert session.identity == "new@example.com"
    assert [e.id for e in app.diary.entries] == [entry.id]

    await app.logout()
    restarted = DiaryApp(store)
    await restarted.start()
    await restarted.login("pass", email="new@example.com")
    assert [e.id for e in restarted.diary.entries] == [entry.id]


async def test_session_restored_on_start(store, app):
    await app.signup("writer@example.com", "pass", "writer")
    await app.diary.add(title="Saved", content="before restart")

    restarted = DiaryApp(store)
    session = await restarted.start()

    assert session.identity == "writer@example.com"
    assert [e.title for e in restarted.diary.entries] == ["Saved"]


async def test_stats_counts_words(app):
    await app.signup("writer@example.com", "pass", "writer")
    await app.diary.add(title="Hello world", content="foo bar baz")

    stats = await app.stats()

    assert stats.total_entries == 1
    assert stats.total_words == 5
    assert stats.current_streak == 1


async def test_remote_app_round_trip(store, api_client):
    diary_app = DiaryApp(store, api_client, SyncMode.REMOTE)
    await diary_app.start()
    session = await diary_app.signup("cloud@example.com", "secret123", "cloudy01")

    entry = await diary_app.diary.add(title="Cloud", content="stored remotely")

    stats = await diary_app.stats()
    assert stats.total_entries == 1
    assert (await api_client.list_entries(session.token))[0].id == entry.id


async def test_start_with_expired_remote_session_uses_local_entries(store, api_client):
    identity = "gone@example.com"
    local = EntryRepository(store)
    await local.load(Session(user=User(id="user-gone", email=identity), identity=identity))
    entry = await local.add(title="Before expiry", content="kept locally")
    expired = Session(user=User(id="user-gone", email=identity), identity=identity, token="expired")
    store.set_item(SESSION_KEY, expired.model_dump_json(by_alias=True))

    diary_app = DiaryApp(store, api_client, SyncMode.HYBRID)
    session = await diary_app.start()

    assert session.token == "expired"
    assert [e.id for e in diary_app.diary.entries] == [entry.id]
    assert (await diary_app.stats()).total_entries == 1


async def test_remote_stats_failure_propagates(store, offline_api_client):
    diary_app = DiaryApp(store, offline_api_client, SyncMode.REMOTE)
    diary_app.auth.session = Session(
        user=User(id="user-1", email="cloud@example.com"), identity="cloud@example.com", token="t"
    )

    with pytest.raises(NetworkFailure):
        await diary_app.stats()


# ===== 接口客户端错误映射 =====


async def test_api_client_maps_errors(api_client):
    with pytest.raises(ValidationError):
        await api_client.register("a@b.com", "123", "shortname")

    token, _ = await api_client.register("mapper@example.com", "secret123", "mapper01")
    with pytest.raises(InvalidCredentials):
        await api_client.login("wrong-pass", username="mapper01")
    with pytest.raises(NotFound):
        await api_client.restore_entry(token, "missing")


async def test_api_client_connection_error(offline_api_client):
    with pytest.raises(NetworkFailure):
        await offline_api_client.list_entries("token")


async def test_api_client_uses_settings_defaults():
    client = DiaryApiClient()

    assert client.base_url.startswith("http")
    assert client.timeout > 0


def reply_with(status, body):
    return DiaryApiClient(
        base_url="http://stub/api",
        transport=httpx.MockTransport(lambda request: httpx.Response(status, json=body)),
    )


async def test_api_client_prefers_error_code_over_message():
    client = reply_with(400, {"message": "Wrong password, try again", "code": "invalid_credentials"})

    with pytest.raises(InvalidCredentials) as excinfo:
        await client.login("nope", username="someone")
    assert excinfo.value.message == "Wrong password, try again"


async def test_api_client_falls_back_to_status_without_code():
    with pytest.raises(ValidationError):
        await reply_with(400, {"message": "Invalid credentials"}).login("nope", username="someone")
    with pytest.raises(AuthRequired):
        await reply_with(401, {"message": "Token expired"}).list_entries("token")
    with pytest.raises(DiaryError):
        await reply_with(502, ["not", "a", "dict"]).list_entries("token")
