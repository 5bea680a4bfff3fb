"""
tests/test_routers_rfps.py — Tests for routers/rfps.py

Covers: RFP CRUD, partial updates and cache invalidation, dispatch to
vendors through the fake sender, and the comparison endpoint (model
narrative mocked via app.services.comparison_service.llm_json).

Called by: pytest
Depends on: routers/rfps.py, conftest.py
"""

from unittest.mock import AsyncMock, patch

NARRATIVE = {
    "summary": "Acme is within budget.",
    "recommendation": "Acme Supplies",
    "reasoning": "Best overall score.",
    "ranking": [{"vendor_name": "Acme Supplies", "rank": 1, "justification": "cheapest"}],
    "concerns": [],
    "negotiation_points": ["Ask for a longer warranty"],
}


# ── CRUD ─────────────────────────────────────────────────────────────


def test_create_rfp(client):
    resp = client.post("/api/rfps", json={
        "title": "Chairs",
        "description": "Ergonomic chairs",
        "budget": 5000,
        "deadline": "2030-01-15T00:00:00Z",
        "requirements": {"items": [{"name": "Chair", "quantity": 40}], "delivery_days": 14},
    })
    assert resp.status_code == 201
    data = resp.json()
    assert data["status"] == "draft"
    assert data["requirements"]["items"][0]["name"] == "Chair"
    assert data["requirements"]["delivery_days"] == 14


def test_create_rfp_rejects_bad_quantity(client):
    resp = client.post("/api/rfps", json={
        "title": "Chairs", "requirements": {"items": [{"name": "Chair", "quantity": 0}]},
    })
    assert resp.status_code == 422


def test_list_and_get(client, test_rfp, test_proposal):
    assert [r["id"] for r in client.get("/api/rfps").json()] == [test_rfp.id]
    data = client.get(f"/api/rfps/{test_rfp.id}").json()
    assert data["title"] == "Office Laptops"
    assert [p["id"] for p in data["proposals"]] == [test_proposal.id]


def test_update_only_sent_fields(client, test_rfp):
    resp = client.put(f"/api/rfps/{test_rfp.id}", json={"description": "Updated", "title": None})
    assert resp.status_code == 200
    data = resp.json()
    assert data["description"] == "Updated"
    assert data["title"] == "Office Laptops"
    assert data["budget"] == 10000


def test_update_blank_title_rejected(client, test_rfp):
    resp = client.put(f"/api/rfps/{test_rfp.id}", json={"title": "  "})
    assert resp.status_code == 400


def test_update_budget_invalidates_cache(client, db_session, test_rfp):
    test_rfp.comparison_cache = {"summary": "old"}
    db_session.commit()
    client.put(f"/api/rfps/{test_rfp.id}", json={"budget": 12000})
    db_session.refresh(test_rfp)
    assert test_rfp.comparison_cache is None
    assert test_rfp.comparison_invalidated_at is not None


def test_update_description_keeps_cache(client, db_session, test_rfp):
    test_rfp.comparison_cache = {"summary": "old"}
    db_session.commit()
    client.put(f"/api/rfps/{test_rfp.id}", json={"description": "New words"})
    db_session.refresh(test_rfp)
    assert test_rfp.comparison_cache == {"summary": "old"}


# ── Send ─────────────────────────────────────────────────────────────


def test_send_to_vendors(client, db_session, fake_sender, test_rfp, test_vendor, second_vendor):
    resp = client.post(f"/api/rfps/{test_rfp.id}/send", json={
        "vendor_ids": [test_vendor.id, second_vendor.id],
    })
    assert resp.status_code == 200
    data = resp.json()
    assert data["sent"] == 2
    assert data["failed"] == 0
    assert {e for e, _ in fake_sender.sent} == {"sales@acme.example", "quotes@beta.example"}
    db_session.refresh(test_rfp)
    assert test_rfp.status == "sent"


def test_send_partial_failure(client, fake_sender, test_rfp, test_vendor, second_vendor):
    fake_sender.fail_for.add("quotes@beta.example")
    data = client.post(f"/api/rfps/{test_rfp.id}/send", json={
        "vendor_ids": [test_vendor.id, second_vendor.id],
    }).json()
    assert data["sent"] == 1
    assert data["failed"] == 1
    failed = [r for r in data["results"] if not r["success"]]
    assert failed[0]["vendor_name"] == "Beta Traders"


def test_send_unknown_vendors(client, test_rfp):
    resp = client.post(f"/api/rfps/{test_rfp.id}/send", json={"vendor_ids": ["nope"]})
    assert resp.status_code == 400


def test_send_unknown_conversation(client, test_rfp, test_vendor):
    resp = client.post(f"/api/rfps/{test_rfp.id}/send", json={
        "vendor_ids": [test_vendor.id], "conversation_id": "missing",
    })
    assert resp.status_code == 404


def test_send_without_email_configured(client, test_rfp, test_vendor):
    from app.dependencies import get_email_sender
    from app.main import app

    app.dependency_overrides[get_email_sender] = lambda: None
    resp = client.post(f"/api/rfps/{test_rfp.id}/send", json={"vendor_ids": [test_vendor.id]})
    assert resp.status_code == 503


# ── Compare ──────────────────────────────────────────────────────────


def test_compare_without_proposals(client, test_rfp):
    resp = client.get(f"/api/rfps/{test_rfp.id}/compare")
    assert resp.status_code == 400


def test_compare_then_cached(client, test_rfp, test_proposal):
    with patch("app.services.comparison_service.llm_json", new_callable=AsyncMock, return_value=NARRATIVE) as mock_llm:
        first = client.get(f"/api/rfps/{test_rfp.id}/compare").json()
        second = client.get(f"/api/rfps/{test_rfp.id}/compare").json()
    assert first["cached"] is False
    assert second["cached"] is True
    assert second["comparison"]["recommendation"] == "Acme Supplies"
    assert mock_llm.await_count == 1


def test_compare_refresh(client, test_rfp, test_proposal):
    with patch("app.services.comparison_service.llm_json", new_callable=AsyncMock, return_value=NARRATIVE) as mock_llm:
        client.get(f"/api/rfps/{test_rfp.id}/compare")
        resp = client.get(f"/api/rfps/{test_rfp.id}/compare", params={"refresh": "true"})
    assert resp.json()["cached"] is False
    assert mock_llm.await_count == 2


def test_compare_model_down(client, test_rfp, test_proposal):
    with patch("app.services.comparison_service.llm_json", new_callable=AsyncMock, return_value=None):
        resp = client.get(f"/api/rfps/{test_rfp.id}/compare")
    assert resp.status_code == 502
    assert resp.json()["error"] == "Comparison could not be generated"
