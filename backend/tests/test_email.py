import smtplib

import pytest
from sqlalchemy import select

from app.models import SmtpConfiguration
from app.services.email import EmailDeliveryError, EmailManager, SmtpConfigCache
from app.utils.field_crypto import encrypt_field


def _config(host: str) -> SmtpConfiguration:
    return SmtpConfiguration(
        host=host,
        port=465,
        secure=True,
        user=f"noreply@{host}",
        password_encrypted=encrypt_field(f"pw-{host}"),
    )


async def _seed(session_factory, *hosts):
    async with session_factory() as db:
        for host in hosts:
            db.add(_config(host))
        await db.commit()


async def _rows(session_factory):
    async with session_factory() as db:
        result = await db.execute(select(SmtpConfiguration).order_by(SmtpConfiguration.id))
        return {row.host: row for row in result.scalars().all()}


def test_falls_back_to_next_config_and_records_stats(run_db, session_factory):
    attempts = []

    def transport(config, message):
        attempts.append(config.host)
        if config.host == "a.example.com":
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

    manager = EmailManager(session_factory, cache=SmtpConfigCache(), transport=transport)

    async def scenario():
        await _seed(session_factory, "a.example.com", "b.example.com")
        used = await manager.send_email("to@example.com", "Hi", "<p>hi</p>")
        return used, await _rows(session_factory)

    used, rows = run_db(scenario)
    assert attempts == ["a.example.com", "b.example.com"]
    assert used == rows["b.example.com"].id
    assert rows["a.example.com"].failure_count == 1
    assert rows["a.example.com"].last_used_at is None
    assert rows["b.example.com"].failure_count == 0
    assert rows["b.example.com"].last_used_at is not None


def test_passwords_are_decrypted_for_transport(run_db, session_factory):
    seen = []
    manager = EmailManager(session_factory, transport=lambda config, message: seen.append(config.password))

    async def scenario():
        await _seed(session_factory, "a.example.com")
        await manager.send_email("to@example.com", "Hi", "<p>hi</p>")

    run_db(scenario)
    assert seen == ["pw-a.example.com"]


def test_no_configs_raises(run_db, session_factory):
    manager = EmailManager(session_factory, transport=lambda config, message: None)

    async def scenario():
        with pytest.raises(EmailDeliveryError):
            await manager.send_email("to@example.com", "Hi", "<p>hi</p>")

    run_db(scenario)


def test_unreadable_config_table_raises_delivery_error(run_db, engine, session_factory):
    manager = EmailManager(session_factory, transport=lambda config, message: None)

    async def scenario():
        async with engine.begin() as conn:
            await conn.run_sync(SmtpConfiguration.__table__.drop)
        with pytest.raises(EmailDeliveryError):
            await manager.send_email("to@example.com", "Hi", "<p>hi</p>")

    run_db(scenario)


def test_all_configs_failing_raises(run_db, session_factory):
    def transport(config, message):
        raise ConnectionRefusedError("down")

    manager = EmailManager(session_factory, transport=transport)

    async def scenario():
        await _seed(session_factory, "a.example.com", "b.example.com")
        with pytest.raises(EmailDeliveryError):
            await manager.send_email("to@example.com", "Hi", "<p>hi</p>")
        return await _rows(session_factory)

    rows = run_db(scenario)
    assert all(row.failure_count == 1 for row in rows.values())


def test_inactive_configs_are_skipped(run_db, session_factory):
    hosts = []
    manager = EmailManager(session_factory, transport=lambda config, message: hosts.append(config.host))

    async def scenario():
        async with session_factory() as db:
            disabled = _config("off.example.com")
            disabled.status = "inactive"
            db.add(disabled)
            db.add(_config("on.example.com"))
            await db.commit()
        await manager.send_email("to@example.com", "Hi", "<p>hi</p>")

    run_db(scenario)
    assert hosts == ["on.example.com"]


def test_config_cache_expires_with_clock(run_db, session_factory, smtp_clock):
    cache = SmtpConfigCache(ttl=300, timer=smtp_clock)
    manager = EmailManager(session_factory, cache=cache, transport=lambda config, message: None)

    async def scenario():
        await _seed(session_factory, "a.example.com")
        first = await manager.load_configs()
        await _seed(session_factory, "b.example.com")
        cached = await manager.load_configs()
        smtp_clock.advance(301)
        reloaded = await manager.load_configs()
        return first, cached, reloaded

    first, cached, reloaded = run_db(scenario)
    assert [c.host for c in first] == ["a.example.com"]
    assert cached is first
    assert len(reloaded) == 2


def test_invalidate_forces_reload(run_db, session_factory, smtp_clock):
    cache = SmtpConfigCache(ttl=300, timer=smtp_clock)
    manager = EmailManager(session_factory, cache=cache, transport=lambda config, message: None)

    async def scenario():
        await _seed(session_factory, "a.example.com")
        await manager.load_configs()
        await _seed(session_factory, "b.example.com")
        cache.invalidate()
        return await manager.load_configs()

    assert len(run_db(scenario)) == 2
