import pytest

from uptimer import lifecycle
from uptimer.errors import NotFound
from uptimer.ownership import (
    ResourceKind,
    ensure_owner,
    load_owned_incident,
    resolve_owner,
    resolve_resource,
)


@pytest.mark.asyncio
async def test_resolve_owner_for_each_kind(db, make_user, make_monitor, make_cron_job):
    owner = await make_user()
    monitor = await make_monitor(owner)
    job = await make_cron_job(owner)

    assert await resolve_owner(db, ResourceKind.monitor, monitor.id) == owner.id
    assert await resolve_owner(db, "cron", job.id) == owner.id


@pytest.mark.asyncio
async def test_resolve_resource(db, make_user, make_monitor, make_cron_job):
    owner = await make_user()
    monitor = await make_monitor(owner)
    job = await make_cron_job(owner)

    assert (await resolve_resource(db, "monitor", monitor.id)).url == "https://api.example.com"
    assert (await resolve_resource(db, "cron", job.id)).name == "Nightly backup"


@pytest.mark.asyncio
async def test_ids_are_not_shared_between_kinds(db, make_user, make_monitor):
    owner = await make_user()
    monitor = await make_monitor(owner)

    with pytest.raises(NotFound, match="Cron job not found"):
        await resolve_owner(db, "cron", monitor.id)


@pytest.mark.asyncio
async def test_unknown_kind(db):
    with pytest.raises(NotFound):
        await resolve_owner(db, "server", "id")


@pytest.mark.asyncio
async def test_ensure_owner_hides_foreign_resources(db, make_user, make_monitor):
    owner = await make_user()
    stranger = await make_user(email="stranger@example.com", name="Stranger")
    monitor = await make_monitor(owner)

    await ensure_owner(db, "monitor", monitor.id, owner.id)
    with pytest.raises(NotFound, match="Monitor not found"):
        await ensure_owner(db, "monitor", monitor.id, stranger.id)


@pytest.mark.asyncio
async def test_load_owned_incident(db, make_user, make_monitor, dispatcher):
    owner = await make_user()
    stranger = await make_user(email="stranger@example.com", name="Stranger")
    monitor = await make_monitor(owner)
    incident = await lifecycle.open_incident(db, "monitor", monitor.id, dispatcher=dispatcher)

    assert (await load_owned_incident(db, incident.id, owner.id)).id == incident.id
    # Internal callers skip the ownership check
    assert (await load_owned_incident(db, incident.id, None)).id == incident.id
    with pytest.raises(NotFound, match="Incident not found"):
        await load_owned_incident(db, incident.id, stranger.id)
