import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from perfeval.main import app
from perfeval.models.base import get_db


@pytest_asyncio.fixture
async def client(session_maker):
    async def _get_test_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = _get_test_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def org(seed):
    manager = await seed.employee("Mina Park")
    pm = await seed.employee("Joon Lee")
    employee = await seed.employee("Dana Cho", manager=manager)
    project = await seed.project(manager=pm)
    period = await seed.period()
    items = [await seed.wbs_item(project, title) for title in ("A", "B", "C")]
    return {
        "employee_id": employee.id,
        "project_id": project.id,
        "period_id": period.id,
        "wbs_item_ids": [item.id for item in items],
    }


def _assignment_body(org, index=0):
    return {
        "employee_id": org["employee_id"],
        "wbs_item_id": org["wbs_item_ids"][index],
        "project_id": org["project_id"],
        "period_id": org["period_id"],
        "assigned_by": "admin",
    }


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_create_assignment_and_duplicate_conflict(client, org):
    response = await client.post("/wbs-assignments", json=_assignment_body(org))
    assert response.status_code == 200
    payload = response.json()
    assert payload["display_order"] == 0
    assert payload["assigned_by"] == "admin"

    duplicate = await client.post("/wbs-assignments", json=_assignment_body(org))
    assert duplicate.status_code == 409

    missing = await client.post("/wbs-assignments", json={**_assignment_body(org), "wbs_item_id": 9999})
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_cancel_is_idempotent_over_http(client, org):
    created = (await client.post("/wbs-assignments", json=_assignment_body(org))).json()

    first = await client.delete(f"/wbs-assignments/{created['id']}")
    assert first.status_code == 200
    assert first.json()["found"] is True
    assert [s["step"] for s in first.json()["steps"]] == [
        "self_evaluations",
        "criteria",
        "line_mappings",
        "assignment",
        "order_compaction",
        "activity_log",
    ]

    second = await client.delete(f"/wbs-assignments/{created['id']}")
    assert second.status_code == 200
    assert second.json()["found"] is False

    by_key = await client.post("/wbs-assignments/cancel-by-key", json=_assignment_body(org))
    assert by_key.status_code == 200
    assert by_key.json()["found"] is False


@pytest.mark.asyncio
async def test_bulk_list_and_order(client, org):
    bulk = await client.post(
        "/wbs-assignments/bulk",
        json={"assignments": [_assignment_body(org, i) for i in range(3)], "assigned_by": "admin"},
    )
    assert bulk.status_code == 200
    rows = bulk.json()
    assert [r["display_order"] for r in rows] == [0, 1, 2]

    moved = await client.patch(f"/wbs-assignments/{rows[2]['id']}/order", json={"direction": "up"})
    assert moved.status_code == 200
    assert moved.json()["display_order"] == 1

    listing = await client.get(
        "/wbs-assignments",
        params={"period_id": org["period_id"], "employee_id": org["employee_id"]},
    )
    assert listing.status_code == 200
    body = listing.json()
    assert body["total"] == 3
    assert [r["wbs_item_id"] for r in body["assignments"]] == [
        org["wbs_item_ids"][0],
        org["wbs_item_ids"][2],
        org["wbs_item_ids"][1],
    ]

    missing = await client.patch("/wbs-assignments/9999/order", json={"direction": "down"})
    assert missing.status_code == 404
    invalid = await client.patch(f"/wbs-assignments/{rows[0]['id']}/order", json={"direction": "sideways"})
    assert invalid.status_code == 422


@pytest.mark.asyncio
async def test_insert_between_and_detail(client, org):
    for index in range(2):
        await client.post("/wbs-assignments", json=_assignment_body(org, index))

    response = await client.post(
        "/wbs-assignments/insert-between",
        json={
            "title": "Inserted",
            "project_id": org["project_id"],
            "employee_id": org["employee_id"],
            "period_id": org["period_id"],
            "previous_wbs_item_id": org["wbs_item_ids"][0],
            "next_wbs_item_id": org["wbs_item_ids"][1],
        },
    )
    assert response.status_code == 200
    created = response.json()
    assert created["wbs_item"]["title"] == "Inserted"
    assert created["wbs_item"]["status"] == "pending"
    assert created["assignment"]["display_order"] == 1

    detail = await client.get(
        "/wbs-assignments/detail",
        params={
            "employee_id": org["employee_id"],
            "wbs_item_id": org["wbs_item_ids"][1],
            "project_id": org["project_id"],
            "period_id": org["period_id"],
        },
    )
    assert detail.status_code == 200
    assert detail.json()["display_order"] == 2

    not_assigned = await client.get(
        "/wbs-assignments/detail",
        params={
            "employee_id": org["employee_id"],
            "wbs_item_id": org["wbs_item_ids"][2],
            "project_id": org["project_id"],
            "period_id": org["period_id"],
        },
    )
    assert not_assigned.status_code == 404


@pytest.mark.asyncio
async def test_create_and_assign_then_rename(client, org):
    response = await client.post(
        "/wbs-assignments/create-and-assign",
        json={
            "title": "Fresh item",
            "project_id": org["project_id"],
            "employee_id": org["employee_id"],
            "period_id": org["period_id"],
        },
    )
    assert response.status_code == 200
    wbs_item = response.json()["wbs_item"]
    assert wbs_item["wbs_code"] == "WBS-004"

    renamed = await client.patch(f"/wbs-assignments/wbs-items/{wbs_item['id']}/title", json={"title": "Renamed"})
    assert renamed.status_code == 200
    assert renamed.json()["title"] == "Renamed"

    missing = await client.patch("/wbs-assignments/wbs-items/9999/title", json={"title": "Nope"})
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_unassigned_items_and_resets(client, org):
    await client.post("/wbs-assignments", json=_assignment_body(org, 0))

    unassigned = await client.get(
        "/wbs-assignments/unassigned-wbs-items",
        params={"project_id": org["project_id"], "period_id": org["period_id"]},
    )
    assert unassigned.status_code == 200
    assert [item["id"] for item in unassigned.json()] == org["wbs_item_ids"][1:]

    reset = await client.post(
        f"/wbs-assignments/reset/employee/{org['employee_id']}",
        json={"period_id": org["period_id"], "reset_by": "admin"},
    )
    assert reset.status_code == 200
    assert reset.json()["deleted_count"] == 1
    assert reset.json()["cleaned_wbs_item_ids"] == [org["wbs_item_ids"][0]]

    no_period = await client.post(f"/wbs-assignments/reset/project/{org['project_id']}", json={})
    assert no_period.status_code == 400

    period_reset = await client.post(f"/wbs-assignments/reset/period/{org['period_id']}")
    assert period_reset.status_code == 200
    assert period_reset.json()["deleted_count"] == 0
