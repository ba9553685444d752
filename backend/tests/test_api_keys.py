import json

import httpx
import pytest
from sqlalchemy import select

from app.core.roles import Role
from app.models import AIApiKey
from app.services.ai_client import AIServiceError, ExternalAIClient
from app.services.api_keys import ApiKeyCache, ApiKeyManager
from app.utils.field_crypto import decrypt_field, encrypt_field


async def _seed_keys(session_factory, *keys):
    async with session_factory() as db:
        rows = [AIApiKey(api_key_encrypted=encrypt_field(k)) for k in keys]
        db.add_all(rows)
        await db.commit()
        return [r.id for r in rows]


async def _row(session_factory, key_id):
    async with session_factory() as db:
        return await db.get(AIApiKey, key_id)


def _gemini_reply(payload: dict) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": json.dumps(payload)}]}}]}


def test_next_key_rotates_round_robin(run_db, api_key_manager, session_factory):
    async def scenario():
        await _seed_keys(session_factory, "key-aaaaaaaaaa", "key-bbbbbbbbbb")
        return [(await api_key_manager.next_key()).key for _ in range(3)]

    assert run_db(scenario) == ["key-aaaaaaaaaa", "key-bbbbbbbbbb", "key-aaaaaaaaaa"]


def test_report_failure_drops_key_and_counts(run_db, api_key_manager, session_factory):
    async def scenario():
        first, second = await _seed_keys(session_factory, "key-aaaaaaaaaa", "key-bbbbbbbbbb")
        await api_key_manager.load_keys()
        await api_key_manager.report_failure(first)
        picks = [(await api_key_manager.next_key()).id for _ in range(2)]
        return first, second, picks, await _row(session_factory, first)

    first, second, picks, row = run_db(scenario)
    assert picks == [second, second]
    assert row.failure_count == 1


def test_mark_used_sets_timestamp(run_db, api_key_manager, session_factory):
    async def scenario():
        (key_id,) = await _seed_keys(session_factory, "key-aaaaaaaaaa")
        await api_key_manager.mark_used(key_id)
        return await _row(session_factory, key_id)

    assert run_db(scenario).last_used_at is not None


def test_reset_failures_reactivates(run_db, api_key_manager, session_factory):
    async def scenario():
        (key_id,) = await _seed_keys(session_factory, "key-aaaaaaaaaa")
        async with session_factory() as db:
            row = await db.get(AIApiKey, key_id)
            row.status = "failed"
            row.failure_count = 5
            await db.commit()
        assert await api_key_manager.next_key() is None
        found = await api_key_manager.reset_failures(key_id)
        missing = await api_key_manager.reset_failures(9999)
        return found, missing, await api_key_manager.next_key(), await _row(session_factory, key_id)

    found, missing, record, row = run_db(scenario)
    assert found is True
    assert missing is False
    assert record.key == "key-aaaaaaaaaa"
    assert row.failure_count == 0
    assert row.status == "active"


def test_key_cache_expires_with_clock(run_db, session_factory, key_clock):
    manager = ApiKeyManager(session_factory, cache=ApiKeyCache(ttl=60, timer=key_clock))

    async def scenario():
        await _seed_keys(session_factory, "key-aaaaaaaaaa")
        before = await manager.load_keys()
        await _seed_keys(session_factory, "key-bbbbbbbbbb")
        cached = await manager.load_keys()
        key_clock.advance(61)
        after = await manager.load_keys()
        return before, cached, after

    before, cached, after = run_db(scenario)
    assert len(before) == len(cached) == 1
    assert len(after) == 2


def test_ai_client_rotates_past_failing_key(run_db, api_key_manager, session_factory):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        key = request.url.params["key"]
        seen.append(key)
        if key == "key-aaaaaaaaaa":
            return httpx.Response(403, json={"error": "forbidden"})
        body = json.loads(request.content)
        assert body["generationConfig"]["responseMimeType"] == "application/json"
        assert body["generationConfig"]["responseSchema"] == {"type": "object"}
        return httpx.Response(200, json=_gemini_reply({"title": "ok"}))

    async def scenario():
        first, _ = await _seed_keys(session_factory, "key-aaaaaaaaaa", "key-bbbbbbbbbb")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = ExternalAIClient(key_manager=api_key_manager, http_client=http, base_url="https://ai.test")
            result = await client.generate("write a title", {"type": "object"})
        return result, await _row(session_factory, first)

    result, failed_row = run_db(scenario)
    assert result == {"title": "ok"}
    assert seen == ["key-aaaaaaaaaa", "key-bbbbbbbbbb"]
    assert failed_row.failure_count == 1


def test_ai_client_without_keys_raises(run_db, api_key_manager):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))) as http:
            client = ExternalAIClient(key_manager=api_key_manager, http_client=http)
            with pytest.raises(AIServiceError):
                await client.generate("prompt")

    run_db(scenario)


def test_ai_client_all_keys_failing_raises(run_db, api_key_manager, session_factory):
    async def scenario():
        await _seed_keys(session_factory, "key-aaaaaaaaaa", "key-bbbbbbbbbb")
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(429))) as http:
            client = ExternalAIClient(key_manager=api_key_manager, http_client=http)
            with pytest.raises(AIServiceError):
                await client.generate("prompt")

    run_db(scenario)


def test_apikey_endpoints_require_super_admin(client, make_user, auth_headers):
    admin = make_user(email="admin@example.com", role=Role.ADMIN)
    assert client.get("/api/superadmin/apikeys", headers=auth_headers(admin)).status_code == 403
    assert client.get("/api/superadmin/apikeys").status_code == 401


def test_apikey_admin_crud(client, make_user, auth_headers, session_factory):
    root = make_user(email="root@example.com", role=Role.SUPER_ADMIN)
    headers = auth_headers(root)

    created = client.post("/api/superadmin/apikeys", json={"key": "AIzaSecretValue1234"}, headers=headers)
    assert created.status_code == 201
    key_id = created.json()["key"]["id"]

    listing = client.get("/api/superadmin/apikeys", headers=headers).json()
    assert listing["keys"][0]["key_preview"] == "...1234"
    assert "AIzaSecretValue1234" not in json.dumps(listing)

    detail = client.get(f"/api/superadmin/apikeys/{key_id}", headers=headers).json()
    assert detail["key"] == "AIzaSecretValue1234"

    updated = client.put(f"/api/superadmin/apikeys/{key_id}", json={"key": "AIzaReplacement9876"}, headers=headers)
    assert updated.status_code == 200

    async def stored():
        async with session_factory() as db:
            row = (await db.execute(select(AIApiKey))).scalar_one()
            return row.api_key_encrypted

    assert decrypt_field(client.portal.call(stored)) == "AIzaReplacement9876"

    assert client.post(f"/api/superadmin/apikeys/{key_id}/reset", headers=headers).status_code == 200
    assert client.delete(f"/api/superadmin/apikeys/{key_id}", headers=headers).status_code == 200
    assert client.get(f"/api/superadmin/apikeys/{key_id}", headers=headers).status_code == 404
    assert client.post(f"/api/superadmin/apikeys/{key_id}/reset", headers=headers).status_code == 404


def test_smtp_admin_never_returns_password(client, make_user, auth_headers, email_manager):
    root = make_user(email="root@example.com", role=Role.SUPER_ADMIN)
    headers = auth_headers(root)
    payload = {"host": "smtp.example.com", "port": 587, "secure": False, "user": "bot@example.com", "pass": "hunter22"}

    created = client.post("/api/superadmin/smtp", json=payload, headers=headers)
    assert created.status_code == 201
    config_id = created.json()["configId"]

    listing = client.get("/api/superadmin/smtp", headers=headers)
    assert listing.status_code == 200
    assert "hunter22" not in listing.text
    assert listing.json()["configs"][0]["host"] == "smtp.example.com"

    assert client.portal.call(email_manager.load_configs)[0].password == "hunter22"
    assert client.delete(f"/api/superadmin/smtp?id={config_id}", headers=headers).status_code == 200
    assert client.portal.call(email_manager.load_configs) == []
    assert client.delete(f"/api/superadmin/smtp?id={config_id}", headers=headers).status_code == 404
