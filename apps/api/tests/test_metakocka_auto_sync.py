"""Metakocka auto-sync scheduling."""

from datetime import datetime, timedelta, timezone

import pytest

from aris.db.enums import MetakockaEntity
from aris.db.models import MetakockaIntegrationLog, Notification
from aris.services import metakocka_auto_sync, metakocka_credentials_service
from aris.services.metakocka_client import MetakockaError, MetakockaErrorType

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def enabled_org(db, test_org):
    metakocka_credentials_service.save_credentials(db, test_org.id, "1234", "secret")
    metakocka_auto_sync.update_settings(db, test_org.id, enabled=True)
    return test_org


def test_settings_created_disabled_with_defaults(db, test_org):
    row = metakocka_auto_sync.get_settings(db, test_org.id)

    assert row.enabled is False
    assert row.products_interval_minutes == 30
    assert row.invoices_interval_minutes == 15
    assert row.contacts_interval_minutes == 60
    assert row.inventory_interval_minutes == 10
    assert row.directions == {
        "products": "metakocka_to_crm",
        "invoices": "metakocka_to_crm",
        "contacts": "metakocka_to_crm",
    }


def test_update_settings_merges_directions(db, test_org):
    row = metakocka_auto_sync.update_settings(
        db,
        test_org.id,
        products_interval_minutes=5,
        contacts_interval_minutes=None,
        directions={"contacts": "crm_to_metakocka"},
    )

    assert row.products_interval_minutes == 5
    assert row.contacts_interval_minutes == 60
    assert row.directions["contacts"] == "crm_to_metakocka"
    assert row.directions["products"] == "metakocka_to_crm"


def test_is_due_respects_interval(db, test_org):
    row = metakocka_auto_sync.get_settings(db, test_org.id)
    assert metakocka_auto_sync.is_due(row, MetakockaEntity.PRODUCTS, NOW)

    row.last_run_at = {"products": (NOW - timedelta(minutes=29)).isoformat()}
    assert not metakocka_auto_sync.is_due(row, MetakockaEntity.PRODUCTS, NOW)
    assert metakocka_auto_sync.is_due(row, MetakockaEntity.PRODUCTS, NOW + timedelta(minutes=1))


@pytest.mark.asyncio
async def test_run_auto_sync_runs_due_entities(db, enabled_org, monkeypatch):
    ran = []

    async def fake_entity_sync(db, client, org_id, entity):
        ran.append(entity)
        return {"success": True, "failed": 0}

    monkeypatch.setattr(metakocka_auto_sync, "run_entity_sync", fake_entity_sync)

    first = await metakocka_auto_sync.run_auto_sync(db, now=NOW)
    assert first == {"orgs_checked": 1, "syncs_run": 4, "errors": []}
    assert set(ran) == set(MetakockaEntity)

    ran.clear()
    second = await metakocka_auto_sync.run_auto_sync(db, now=NOW + timedelta(minutes=12))
    assert second["syncs_run"] == 1
    assert ran == [MetakockaEntity.INVENTORY]


@pytest.mark.asyncio
async def test_crm_to_metakocka_direction_is_skipped(db, enabled_org, monkeypatch):
    metakocka_auto_sync.update_settings(
        db, enabled_org.id, directions={"products": "crm_to_metakocka"}
    )
    ran = []

    async def fake_entity_sync(db, client, org_id, entity):
        ran.append(entity)
        return {"failed": 0}

    monkeypatch.setattr(metakocka_auto_sync, "run_entity_sync", fake_entity_sync)

    await metakocka_auto_sync.run_auto_sync(db, now=NOW)

    assert MetakockaEntity.PRODUCTS not in ran
    assert len(ran) == 3


@pytest.mark.asyncio
async def test_failed_entity_is_logged_and_admins_notified(db, enabled_org, test_user, monkeypatch):
    async def fake_entity_sync(db, client, org_id, entity):
        if entity == MetakockaEntity.INVOICES:
            raise MetakockaError("Metakocka API server error", MetakockaErrorType.SERVER)
        return {"failed": 0}

    monkeypatch.setattr(metakocka_auto_sync, "run_entity_sync", fake_entity_sync)

    summary = await metakocka_auto_sync.run_auto_sync(db, now=NOW)

    assert summary["syncs_run"] == 3
    assert summary["errors"] == [
        {
            "organization_id": str(enabled_org.id),
            "entity": "invoices",
            "error": "Metakocka API server error",
        }
    ]
    log = db.query(MetakockaIntegrationLog).one()
    assert log.category == "sync"
    assert log.context["entity"] == "invoices"
    notification = db.query(Notification).filter(Notification.user_id == test_user.id).one()
    assert notification.type == "metakocka_sync_failed"
    # The failed entity still waits for its next interval
    row = metakocka_auto_sync.get_settings(db, enabled_org.id)
    assert "invoices" in row.last_run_at


@pytest.mark.asyncio
async def test_missing_credentials_reported_per_org(db, test_org):
    metakocka_auto_sync.update_settings(db, test_org.id, enabled=True)

    summary = await metakocka_auto_sync.run_auto_sync(db, now=NOW)

    assert summary["syncs_run"] == 0
    assert summary["errors"][0]["entity"] is None


@pytest.mark.asyncio
async def test_disabled_orgs_are_not_checked(db, test_org):
    metakocka_auto_sync.get_settings(db, test_org.id)

    summary = await metakocka_auto_sync.run_auto_sync(db, now=NOW)

    assert summary == {"orgs_checked": 0, "syncs_run": 0, "errors": []}
