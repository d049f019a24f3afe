import json
from typing import Any, List

import httpx
import pytest
from acontext import AcontextClient

from config import ContextServiceConfig
from context_service.client import ContextServiceClient
from errors import ContextServiceError, ErrorCode

STAMP = {"created_at": "2025-01-01T00:00:00Z", "updated_at": "2025-01-01T00:00:00Z"}


class RecordingTransport:
    """Records SDK requests and replays queued envelopes or transport errors."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self._queue: List[Any] = []

    def reply(self, data: Any, *, status: int = 200, code: int = 0, msg: str = "ok") -> None:
        self._queue.append(httpx.Response(status, json={"code": code, "data": data, "msg": msg}))

    def fail(self, exc: BaseException) -> None:
        self._queue.append(exc)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        item = self._queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def client(transport) -> ContextServiceClient:
    config = ContextServiceConfig(api_key="sk-secret", base_url="https://ctx.test/api/v1", timeout_seconds=3.0)
    http = httpx.Client(base_url=config.base_url, transport=httpx.MockTransport(transport))
    return ContextServiceClient(config, sdk=AcontextClient(api_key=config.api_key, client=http))


def _session(session_id: str = "sess-1", **extra: Any) -> dict:
    return {"id": session_id, "project_id": "proj-1", **STAMP, **extra}


def test_create_session_sends_configs_and_auth(client, transport):
    transport.reply(_session(space_id="space-1", configs={"userId": "u1"}))

    created = client.create_session({"userId": "u1"}, space_id="space-1")

    request = transport.requests[0]
    assert created["id"] == "sess-1"
    assert created["space_id"] == "space-1"
    assert request.method == "POST"
    assert str(request.url) == "https://ctx.test/api/v1/session"
    assert request.headers["Authorization"] == "Bearer sk-secret"
    assert json.loads(request.content) == {"space_id": "space-1", "configs": {"userId": "u1"}}


def test_store_message_posts_blob_and_format(client, transport):
    transport.reply(
        {
            "id": "msg-1",
            "session_id": "sess-1",
            "role": "user",
            "meta": {},
            "parts": [],
            "session_task_process_status": "pending",
            **STAMP,
        }
    )

    stored = client.store_message("sess-1", {"role": "user", "content": "hi"}, format="openai")

    request = transport.requests[0]
    assert stored["id"] == "msg-1"
    assert request.url.path == "/api/v1/session/sess-1/messages"
    assert json.loads(request.content) == {"format": "openai", "blob": {"role": "user", "content": "hi"}}


def test_get_messages_sends_edit_strategies_as_json(client, transport):
    transport.reply(
        {"items": [{"role": "user", "content": "hi"}], "ids": ["m1"], "has_more": False, "this_time_tokens": 3}
    )
    strategies = [{"type": "remove_tool_call_params", "params": {"keep_recent_n_tool_calls": 5}}]

    items = client.get_messages("sess-1", format="openai", limit=4, edit_strategies=strategies)

    params = transport.requests[0].url.params
    assert items == [{"role": "user", "content": "hi"}]
    assert params["format"] == "openai"
    assert params["limit"] == "4"
    assert json.loads(params["edit_strategies"]) == strategies


def test_get_messages_omits_empty_strategies(client, transport):
    transport.reply({"items": [], "ids": [], "has_more": False, "this_time_tokens": 0})
    assert client.get_messages("sess-1", edit_strategies=[]) == []
    assert "edit_strategies" not in transport.requests[0].url.params


def test_token_counts_and_disks_become_plain_dicts(client, transport):
    transport.reply({"total_tokens": 12})
    transport.reply({"items": [{"id": "disk-1", "project_id": "proj-1", **STAMP}], "has_more": False})

    assert client.get_token_counts("sess-1") == {"total_tokens": 12}
    disks = client.list_disks()
    assert [disk["id"] for disk in disks] == ["disk-1"]
    assert isinstance(disks[0], dict)


def test_experience_search_returns_cited_blocks(client, transport):
    block = {"block_id": "b1", "title": "Deploy", "type": "sop", "props": {"use_when": "shipping"}, "distance": 0.1}
    transport.reply({"cited_blocks": [block], "final_answer": None})

    result = client.experience_search("space-1", query="deploy")

    params = transport.requests[0].url.params
    assert transport.requests[0].url.path == "/api/v1/space/space-1/experience_search"
    assert params["query"] == "deploy"
    assert params["mode"] == "fast"
    assert result["cited_blocks"][0]["title"] == "Deploy"
    assert result["cited_blocks"][0]["props"] == {"use_when": "shipping"}


def test_upsert_artifact_uploads_file_with_mime_type(client, transport):
    transport.reply({"disk_id": "disk-1", "path": "/", "filename": "notes.txt", "meta": {}, **STAMP})

    artifact = client.upsert_artifact("disk-1", filename="notes.txt", data=b"hello", mime_type="text/plain")

    request = transport.requests[0]
    assert artifact["filename"] == "notes.txt"
    assert request.url.path == "/api/v1/disk/disk-1/artifact"
    assert request.headers["Content-Type"].startswith("multipart/form-data; boundary=")
    assert b'filename="notes.txt"' in request.content
    assert b"Content-Type: text/plain\r\n\r\nhello\r\n" in request.content


def test_list_artifacts_passes_path(client, transport):
    transport.reply({"artifacts": [], "directories": ["docs"]})

    listing = client.list_artifacts("disk-1", path="/docs/")

    assert listing == {"artifacts": [], "directories": ["docs"]}
    assert transport.requests[0].url.params["path"] == "/docs/"


def test_http_error_maps_status(client, transport):
    transport.reply(None, status=401, code=401, msg="bad key")

    with pytest.raises(ContextServiceError) as excinfo:
        client.ping()

    assert excinfo.value.status == 401
    assert excinfo.value.code is ErrorCode.AUTH_REQUIRED
    assert "bad key" in excinfo.value.message


def test_connection_failure_is_network_error(client, transport):
    transport.fail(httpx.ConnectError("[Errno 111] Connection refused"))

    with pytest.raises(ContextServiceError) as excinfo:
        client.get_token_counts("sess-1")

    assert excinfo.value.code is ErrorCode.NETWORK_ERROR
    assert excinfo.value.is_network_error


def test_timeout_maps_to_timeout_code(client, transport):
    transport.fail(httpx.ReadTimeout("read timed out"))

    with pytest.raises(ContextServiceError) as excinfo:
        client.get_token_counts("sess-1")

    assert excinfo.value.code is ErrorCode.TIMEOUT
    assert "3.0s" in excinfo.value.message


def test_malformed_response_raises(client, transport):
    transport.reply({"unexpected": True})

    with pytest.raises(ContextServiceError) as excinfo:
        client.create_disk()

    assert "unexpected response" in excinfo.value.message


def test_sdk_is_built_from_config():
    config = ContextServiceConfig(api_key="sk-secret", base_url="https://ctx.test/api/v1", timeout_seconds=7.0)

    client = ContextServiceClient(config)

    assert isinstance(client._sdk, AcontextClient)
    assert client._sdk.base_url == "https://ctx.test/api/v1"
