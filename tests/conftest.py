import os
import tempfile

# 在导入应用模块之前把数据库和日志指向临时目录
_TMP_DIR = tempfile.mkdtemp(prefix="ediary-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP_DIR}/server.db")
os.environ.setdefault("LOCAL_STORE_PATH", f"{_TMP_DIR}/local.db")
os.environ.setdefault("LOG_FILE", f"{_TMP_DIR}/app.log")
os.environ.setdefault("JWT_SECRET", "test-secret")

import httpx
import pytest
from fastapi.testclient import TestClient

from main import app
from ediary.api.deps import get_auth_service, get_diary_service
from ediary.client.api_client import DiaryApiClient
from ediary.client.local_store import LocalStore
from ediary.services.auth_service import AuthService
from ediary.services.diary_service import DiaryService
from ediary.utils.database import Database


@pytest.fixture
def database(tmp_path):
    return Database(f"sqlite:///{tmp_path / 'server.db'}")


@pytest.fixture
def auth_service(database):
    return AuthService(database, secret="test-secret")


@pytest.fixture
def diary_service(database):
    return DiaryService(database)


@pytest.fixture
def server(auth_service, diary_service):
    """应用使用测试数据库"""
    app.dependency_overrides[get_auth_service] = lambda: auth_service
    app.dependency_overrides[get_diary_service] = lambda: diary_service
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(server):
    with TestClient(server) as test_client:
        yield test_client


@pytest.fixture
def store(tmp_path):
    return LocalStore(str(tmp_path / "local.db"))


@pytest.fixture
def api_client(server):
    """直接挂载ASGI应用的接口客户端"""
    return DiaryApiClient(
        base_url="http://testserver/api",
        transport=httpx.ASGITransport(app=server),
    )


@pytest.fixture
def offline_api_client():
    """所有请求都连接失败的接口客户端"""
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    return DiaryApiClient(
        base_url="http://offline/api",
        transport=httpx.MockTransport(refuse),
    )


@pytest.fixture
def register_user(client):
    """通过接口注册用户，返回 {token, user}"""
    def register(email="reader@example.com", username="reader01", password="secret123"):
        response = client.post(
            "/api/auth/register",
            json={"email": email, "username": username, "password": password},
        )
        assert response.status_code == 201, response.text
        return response.json()

    return register


@pytest.fixture
def auth_headers(register_user):
    token = register_user()["token"]
    return {"Authorization": f"Bearer {token}"}
