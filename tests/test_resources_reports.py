"""
test_resources_reports.py — Relief resources and field reports.

Both share the located-record store and service with alerts; these tests
cover what differs: schemas, defaults, filters and access policies.

Run with:
    pytest tests/test_resources_reports.py -v
"""

from __future__ import annotations

from typing import Any, Dict

import pytest
import pytest_asyncio

from backend.app.core.errors import ForbiddenError, ValidationError
from backend.app.core.security import Role
from backend.app.records.reports import ReportService, ReportStore
from backend.app.records.resources import ResourceService, ResourceStore

from conftest import MIAMI_LAT, MIAMI_LON, bearer


def resource_payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "name": "Bottled water",
        "type": "Water",
        "quantity": 500,
        "unit": "litres",
        "location": {"coordinates": [MIAMI_LON, MIAMI_LAT], "address": "Miami Arena"},
    }
    payload.update(overrides)
    return payload


def report_payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "title": "Bridge washed out",
        "description": "NW 7th Ave bridge impassable.",
        "type": "Infrastructure",
        "location": {"coordinates": [MIAMI_LON, MIAMI_LAT], "address": "NW 7th Ave"},
    }
    payload.update(overrides)
    return payload


@pytest_asyncio.fixture
async def resources(database) -> ResourceService:
    return ResourceService(ResourceStore(database))


@pytest_asyncio.fixture
async def reports(database) -> ReportService:
    return ReportService(ReportStore(database))


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Resources
# ═══════════════════════════════════════════════════════════════════════════

class TestResources:

    @pytest.mark.asyncio
    async def test_create_defaults(self, resources, owner):
        created = await resources.create(resource_payload(), owner)
        assert created["id"].startswith("RES-")
        assert created["status"] == "Available"
        assert created["quantity"] == 500
        assert created["description"] is None

    @pytest.mark.asyncio
    async def test_negative_quantity_rejected(self, resources, owner):
        with pytest.raises(ValidationError):
            await resources.create(resource_payload(quantity=-1), owner)

    @pytest.mark.asyncio
    async def test_owner_edits_stranger_refused(self, resources, owner, stranger):
        created = await resources.create(resource_payload(), owner)
        with pytest.raises(ForbiddenError):
            await resources.update(created["id"], {"quantity": 0}, stranger)

        updated = await resources.update(
            created["id"], {"quantity": 0, "status": "Depleted"}, owner,
        )
        assert updated["status"] == "Depleted"
        assert updated["version"] == 2

    @pytest.mark.asyncio
    async def test_optional_field_may_be_cleared(self, resources, owner):
        created = await resources.create(resource_payload(description="Pallets by gate 3"), owner)
        updated = await resources.update(created["id"], {"description": None}, owner)
        assert updated["description"] is None

        with pytest.raises(ValidationError):
            await resources.update(created["id"], {"quantity": None}, owner)

    @pytest.mark.asyncio
    async def test_only_admin_deletes(self, resources, owner, admin):
        created = await resources.create(resource_payload(), owner)
        with pytest.raises(ForbiddenError):
            await resources.delete(created["id"], owner)
        await resources.delete(created["id"], admin)
        assert await resources.list() == []

    @pytest.mark.asyncio
    async def test_filters(self, resources, owner):
        await resources.create(resource_payload(type="Food", name="MREs"), owner)
        water = await resources.create(resource_payload(), owner)
        found = await resources.list({"type": "Water"})
        assert [r["id"] for r in found] == [water["id"]]

        with pytest.raises(ValidationError):
            await resources.list({"type": "Gold"})


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Reports
# ═══════════════════════════════════════════════════════════════════════════

class TestReports:

    @pytest.mark.asyncio
    async def test_create_defaults(self, reports, owner):
        created = await reports.create(report_payload(media=None), owner)
        assert created["id"].startswith("REP-")
        assert created["status"] == "Pending"
        assert created["media"] == []
        assert created["relatedAlert"] is None

    @pytest.mark.asyncio
    async def test_related_alert_alias(self, reports, owner):
        created = await reports.create(
            report_payload(relatedAlert="ALR-ABCDEF123456", media=["https://img/1.jpg"]),
            owner,
        )
        assert created["relatedAlert"] == "ALR-ABCDEF123456"
        assert created["media"] == ["https://img/1.jpg"]

        found = await reports.list({"alert": "ALR-ABCDEF123456"})
        assert [r["id"] for r in found] == [created["id"]]
        assert await reports.list({"alert": "ALR-000000000000"}) == []

    @pytest.mark.asyncio
    async def test_responder_may_triage(self, reports, owner, responder):
        created = await reports.create(report_payload(), owner)
        updated = await reports.update(created["id"], {"status": "Verified"}, responder)
        assert updated["status"] == "Verified"
        assert updated["createdBy"] == owner.id

    @pytest.mark.asyncio
    async def test_author_may_withdraw(self, reports, owner):
        created = await reports.create(report_payload(), owner)
        removed = await reports.delete(created["id"], owner)
        assert removed["id"] == created["id"]
        assert await reports.list() == []

    @pytest.mark.asyncio
    async def test_others_may_not_delete(self, reports, owner, stranger, responder):
        created = await reports.create(report_payload(), owner)
        for actor in (stranger, responder):
            with pytest.raises(ForbiddenError):
                await reports.delete(created["id"], actor)
        assert len(await reports.list()) == 1

    @pytest.mark.asyncio
    async def test_unknown_filter(self, reports):
        with pytest.raises(ValidationError):
            await reports.list({"severity": "High"})


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: HTTP
# ═══════════════════════════════════════════════════════════════════════════

class TestRoutes:

    def test_resource_nearby(self, client):
        headers = bearer("user-owner")
        near = client.post("/api/resources", json=resource_payload(), headers=headers).json()
        client.post(
            "/api/resources",
            json=resource_payload(location={"coordinates": [-80.1373, 26.1224], "address": "Fort Lauderdale"}),
            headers=headers,
        )
        found = client.get(
            "/api/resources/nearby", params={"lng": MIAMI_LON, "lat": MIAMI_LAT, "distance": 10},
        ).json()
        assert [r["id"] for r in found] == [near["id"]]

    def test_resource_nearby_requires_point(self, client):
        assert client.get("/api/resources/nearby").status_code == 400

    def test_resource_delete_message(self, client):
        created = client.post(
            "/api/resources", json=resource_payload(), headers=bearer("user-owner"),
        ).json()
        response = client.delete(
            f"/api/resources/{created['id']}", headers=bearer("boss", Role.ADMIN),
        )
        assert response.json() == {"message": "Resource removed"}

    def test_report_lifecycle(self, client):
        author = bearer("user-owner")
        created = client.post("/api/reports", json=report_payload(), headers=author)
        assert created.status_code == 201
        report_id = created.json()["id"]

        listed = client.get("/api/reports", params={"status": "Pending"}).json()
        assert [r["id"] for r in listed] == [report_id]

        response = client.delete(f"/api/reports/{report_id}", headers=author)
        assert response.json() == {"message": "Report removed"}
        assert client.get(f"/api/reports/{report_id}").status_code == 404
