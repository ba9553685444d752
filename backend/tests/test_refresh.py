from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, update
from sqlalchemy.exc import OperationalError

from app.core.roles import Role, cookie_name_for, refresh_ttl_for, secret_for
from app.core.tokens import issue_token, verify_access_token, verify_token
from app.models import User
from app.services import auth as auth_service
from app.services.auth import SessionRefresher
from app.services.users import build_identity


def _refresh_token(user, role=None):
    role = role or user.role_id
    return issue_token(build_identity(user), secret_for(role), refresh_ttl_for(role))


def _set_cookie_headers(response):
    return response.headers.get_list("set-cookie")


def _cleared(response, name):
    return any(h.startswith(f"{name}=") and "max-age=0" in h.lower() for h in _set_cookie_headers(response))


def _set(response, name):
    return any(h.startswith(f"{name}=") and "max-age=0" not in h.lower() for h in _set_cookie_headers(response))


def test_refresh_without_cookies_is_unauthorized(client):
    response = client.post("/api/auth/refresh")
    assert response.status_code == 401
    assert response.json()["success"] is False
    assert _set_cookie_headers(response) == []


def test_refresh_issues_new_tokens_for_user(client, make_user):
    user = make_user(email="u@example.com")
    client.cookies.set("refreshToken", _refresh_token(user))

    response = client.post("/api/auth/refresh")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["user"]["id"] == user.id
    assert verify_access_token(body["accessToken"]).id == user.id
    assert _set(response, "refreshToken")


def test_refresh_reads_current_row_not_old_claims(client, make_user, session_factory):
    user = make_user(email="u@example.com", name="Old Name")
    client.cookies.set("refreshToken", _refresh_token(user))

    async def rename():
        async with session_factory() as db:
            await db.execute(update(User).where(User.id == user.id).values(name="New Name"))
            await db.commit()

    client.portal.call(rename)
    body = client.post("/api/auth/refresh").json()
    assert body["user"]["name"] == "New Name"


def test_super_admin_cookie_wins(client, make_user):
    admin = make_user(email="root@example.com", role=Role.SUPER_ADMIN)
    user = make_user(email="u@example.com")
    client.cookies.set("superAdminRefreshToken", _refresh_token(admin))
    client.cookies.set("refreshToken", _refresh_token(user))

    body = client.post("/api/auth/refresh").json()
    assert body["user"]["id"] == admin.id
    assert body["user"]["role"] == 1


def test_token_in_wrong_tier_cookie_is_rejected_and_cleared(client, make_user):
    user = make_user(email="u@example.com")
    # 用户密钥签发的令牌放进管理员 Cookie
    client.cookies.set("adminRefreshToken", _refresh_token(user))

    response = client.post("/api/auth/refresh")
    assert response.status_code == 401
    assert _cleared(response, "adminRefreshToken")
    assert not _cleared(response, "refreshToken")


def test_invalid_higher_tier_falls_through_to_valid_user_cookie(client, make_user):
    user = make_user(email="u@example.com")
    client.cookies.set("superAdminRefreshToken", "garbage")
    client.cookies.set("refreshToken", _refresh_token(user))

    response = client.post("/api/auth/refresh")
    assert response.status_code == 200
    assert response.json()["user"]["id"] == user.id
    assert _cleared(response, "superAdminRefreshToken")
    assert _set(response, "refreshToken")


def test_expired_cookie_is_cleared(client, make_user):
    user = make_user(email="u@example.com")
    ttl = refresh_ttl_for(Role.USER)
    stale = issue_token(
        build_identity(user), secret_for(Role.USER), ttl, now=datetime.now(timezone.utc) - ttl - timedelta(minutes=1)
    )
    client.cookies.set("refreshToken", stale)

    response = client.post("/api/auth/refresh")
    assert response.status_code == 401
    assert _cleared(response, "refreshToken")


def test_deleted_user_cannot_refresh(client, make_user, session_factory):
    user = make_user(email="gone@example.com")
    client.cookies.set("refreshToken", _refresh_token(user))

    async def remove():
        async with session_factory() as db:
            await db.execute(delete(User).where(User.id == user.id))
            await db.commit()

    client.portal.call(remove)
    response = client.post("/api/auth/refresh")
    assert response.status_code == 401
    assert _cleared(response, "refreshToken")


def test_role_change_moves_cookie_to_new_tier(client, make_user, session_factory):
    user = make_user(email="promoted@example.com")
    client.cookies.set("refreshToken", _refresh_token(user))

    async def promote():
        async with session_factory() as db:
            await db.execute(update(User).where(User.id == user.id).values(role_id=2))
            await db.commit()

    client.portal.call(promote)
    response = client.post("/api/auth/refresh")
    assert response.status_code == 200
    assert response.json()["user"]["role"] == 2
    assert _set(response, "adminRefreshToken")
    assert _cleared(response, "refreshToken")

    admin_cookie = next(h for h in _set_cookie_headers(response) if h.startswith("adminRefreshToken="))
    assert "max-age=21600" in admin_cookie.lower()


def test_refresher_service_marks_only_failed_tiers(run_db, create_user, session_factory):
    async def scenario():
        user = await create_user(email="svc@example.com")
        cookies = {
            cookie_name_for(Role.ADMIN): "broken",
            cookie_name_for(Role.USER): _refresh_token(user),
        }
        async with session_factory() as db:
            outcome = await SessionRefresher(db).refresh(cookies)
        return user, outcome

    user, outcome = run_db(scenario)
    assert outcome.success
    assert outcome.cookies_to_clear == [Role.ADMIN]
    assert outcome.session.role == Role.USER
    assert verify_token(outcome.session.refresh_token, secret_for(Role.USER)).id == user.id


def test_storage_error_rolls_back_before_next_tier(run_db, create_user, session_factory, monkeypatch):
    real_lookup = auth_service.get_user_by_id
    calls = []

    async def flaky_lookup(db, user_id):
        calls.append(user_id)
        if len(calls) == 1:
            raise OperationalError("SELECT", {}, Exception("current transaction is aborted"))
        return await real_lookup(db, user_id)

    monkeypatch.setattr(auth_service, "get_user_by_id", flaky_lookup)

    async def scenario():
        user = await create_user(email="flaky@example.com")
        cookies = {
            cookie_name_for(Role.SUPER_ADMIN): _refresh_token(user, Role.SUPER_ADMIN),
            cookie_name_for(Role.USER): _refresh_token(user),
        }
        rollbacks = []
        async with session_factory() as db:
            real_rollback = db.rollback

            async def tracked_rollback():
                rollbacks.append(True)
                await real_rollback()

            db.rollback = tracked_rollback
            outcome = await SessionRefresher(db).refresh(cookies)
        return outcome, rollbacks

    outcome, rollbacks = run_db(scenario)
    assert rollbacks == [True]
    assert outcome.success
    assert outcome.session.role == Role.USER
    # 存储错误不清除该层级的 Cookie
    assert outcome.cookies_to_clear == []
