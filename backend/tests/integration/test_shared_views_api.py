"""
tests/integration/test_shared_views_api.py: Integration tests for the read
side and for user lookup.

Endpoints covered:
  GET /expenses/shared-by-me     → 200 / 400
  GET /expenses/shared-with-me   → 200
  GET /sharing/lookup?email=     → 200 / 400 / 404 / 422

Properties verified:
  - Views are scoped to the caller; nobody else's shares leak in
  - Owned expenses carry total_owed, total_paid and all_settled
  - Newest first; status filter and offset/limit pagination
  - Expired tokens are rejected with TOKEN_EXPIRED
"""

from __future__ import annotations

from datetime import timedelta

from backend.tests.integration.helpers import (
    auth_headers,
    headers_for,
    make_user,
    participant_id_for,
    share_equally,
    token_for,
)


# ═══════════════════════════════════════════════════════════════════════════
# Setup helpers
# ═══════════════════════════════════════════════════════════════════════════

def _shared_by_me(client, app, user, query: str = ""):
    return client.get(f"/api/v1/expenses/shared-by-me{query}", headers=headers_for(app, user))


def _shared_with_me(client, app, user):
    return client.get("/api/v1/expenses/shared-with-me", headers=headers_for(app, user))


def _lookup(client, app, user, email: str):
    return client.get(
        "/api/v1/sharing/lookup",
        query_string={"email": email},
        headers=headers_for(app, user),
    )


# ═══════════════════════════════════════════════════════════════════════════
# GET /expenses/shared-by-me
# ═══════════════════════════════════════════════════════════════════════════

class TestSharedByMe:

    def test_lists_owned_expenses_newest_first(self, client, app):
        alice = make_user(app, "alice")
        bob   = make_user(app, "bob")
        first = share_equally(client, app, alice, [bob], amount="10.00")
        second = share_equally(client, app, alice, [bob], amount="20.00")

        resp = _shared_by_me(client, app, alice)
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert [i["id"] for i in data["items"]] == [second["id"], first["id"]]
        assert data["total"] == 2
        assert data["has_more"] is False

    def test_other_users_see_nothing(self, client, app):
        alice = make_user(app, "alice")
        bob   = make_user(app, "bob")
        share_equally(client, app, alice, [bob])

        data = _shared_by_me(client, app, bob).get_json()["data"]
        assert data == {"items": [], "total": 0, "has_more": False}

    def test_totals_track_payments_and_declines(self, client, app):
        alice = make_user(app, "alice")
        bob   = make_user(app, "bob")
        carol = make_user(app, "carol")
        expense = share_equally(client, app, alice, [bob, carol], amount="300.00")

        client.post(
            f"/api/v1/expenses/shares/{participant_id_for(expense, bob)}/paid",
            headers=headers_for(app, alice),
        )
        item = _shared_by_me(client, app, alice).get_json()["data"]["items"][0]
        assert item["total_owed"]  == "100.00"
        assert item["total_paid"]  == "100.00"
        assert item["all_settled"] is False

        client.post(
            f"/api/v1/expenses/shares/{participant_id_for(expense, carol)}/decline",
            headers=headers_for(app, carol),
        )
        item = _shared_by_me(client, app, alice).get_json()["data"]["items"][0]
        assert item["total_owed"]  == "0.00"
        assert item["total_paid"]  == "100.00"
        assert item["all_settled"] is True

    def test_status_filter(self, client, app):
        alice = make_user(app, "alice")
        bob   = make_user(app, "bob")
        settled = share_equally(client, app, alice, [bob], amount="10.00")
        pending = share_equally(client, app, alice, [bob], amount="20.00")
        client.post(
            f"/api/v1/expenses/shares/{participant_id_for(settled, bob)}/paid",
            headers=headers_for(app, alice),
        )

        pending_ids = [i["id"] for i in _shared_by_me(client, app, alice, "?status=pending")
                       .get_json()["data"]["items"]]
        settled_ids = [i["id"] for i in _shared_by_me(client, app, alice, "?status=settled")
                       .get_json()["data"]["items"]]
        assert pending_ids == [pending["id"]]
        assert settled_ids == [settled["id"]]

    def test_pagination(self, client, app):
        alice = make_user(app, "alice")
        bob   = make_user(app, "bob")
        ids = [share_equally(client, app, alice, [bob], amount="10.00")["id"] for _ in range(3)]

        page1 = _shared_by_me(client, app, alice, "?limit=2").get_json()["data"]
        page2 = _shared_by_me(client, app, alice, "?limit=2&offset=2").get_json()["data"]

        assert [i["id"] for i in page1["items"]] == [ids[2], ids[1]]
        assert page1["total"] == 3
        assert page1["has_more"] is True
        assert [i["id"] for i in page2["items"]] == [ids[0]]
        assert page2["has_more"] is False

    def test_oversized_limit_is_clamped(self, client, app):
        alice = make_user(app, "alice")
        bob   = make_user(app, "bob")
        share_equally(client, app, alice, [bob])

        resp = _shared_by_me(client, app, alice, "?limit=100000")
        assert resp.status_code == 200
        assert len(resp.get_json()["data"]["items"]) == 1

    def test_unknown_status_filter_returns_400(self, client, app):
        alice = make_user(app, "alice")
        resp = _shared_by_me(client, app, alice, "?status=overdue")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_STATUS_FILTER"

    def test_negative_offset_returns_400(self, client, app):
        alice = make_user(app, "alice")
        resp = _shared_by_me(client, app, alice, "?offset=-1")
        assert resp.status_code == 400
        err = resp.get_json()["error"]
        assert err["code"]  == "INVALID_FIELD"
        assert err["field"] == "offset"


# ═══════════════════════════════════════════════════════════════════════════
# GET /expenses/shared-with-me
# ═══════════════════════════════════════════════════════════════════════════

class TestSharedWithMe:

    def test_participant_sees_share_with_owner_identity(self, client, app):
        alice = make_user(app, "alice", display_name="Alice")
        bob   = make_user(app, "bob")
        expense = share_equally(client, app, alice, [bob], amount="300.00")

        resp = _shared_with_me(client, app, bob)
        assert resp.status_code == 200
        items = resp.get_json()["data"]
        assert len(items) == 1

        item = items[0]
        assert item["id"]           == participant_id_for(expense, bob)
        assert item["share_amount"] == "150.00"
        assert item["status"]       == "PENDING"
        assert item["shared_expense"]["id"]           == expense["id"]
        assert item["shared_expense"]["total_amount"] == "300.00"
        assert item["shared_expense"]["owner"] == {
            "id": alice["id"],
            "email": alice["email"],
            "display_name": "Alice",
        }
        assert item["shared_expense"]["transaction"]["description"] == "Dinner"

    def test_owner_does_not_see_own_expense_here(self, client, app):
        alice = make_user(app, "alice")
        bob   = make_user(app, "bob")
        share_equally(client, app, alice, [bob])

        assert _shared_with_me(client, app, alice).get_json()["data"] == []

    def test_newest_first(self, client, app):
        alice = make_user(app, "alice")
        bob   = make_user(app, "bob")
        first = share_equally(client, app, alice, [bob], amount="10.00")
        second = share_equally(client, app, alice, [bob], amount="20.00")

        items = _shared_with_me(client, app, bob).get_json()["data"]
        assert [i["shared_expense"]["id"] for i in items] == [second["id"], first["id"]]


# ═══════════════════════════════════════════════════════════════════════════
# GET /sharing/lookup
# ═══════════════════════════════════════════════════════════════════════════

class TestLookupUser:

    def test_finds_user_case_insensitively(self, client, app):
        alice = make_user(app, "alice")
        bob   = make_user(app, "bob", display_name="Bob")

        resp = _lookup(client, app, alice, "BOB@test.com")
        assert resp.status_code == 200
        assert resp.get_json()["data"] == {
            "id": bob["id"],
            "email": bob["email"],
            "display_name": "Bob",
        }

    def test_own_email_returns_422(self, client, app):
        alice = make_user(app, "alice")
        resp = _lookup(client, app, alice, alice["email"])
        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "SELF_SHARE"

    def test_unknown_email_returns_404(self, client, app):
        alice = make_user(app, "alice")
        resp = _lookup(client, app, alice, "ghost@test.com")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "USER_NOT_FOUND"

    def test_malformed_email_returns_400(self, client, app):
        alice = make_user(app, "alice")
        resp = _lookup(client, app, alice, "nope")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "email"

    def test_expired_token_returns_401(self, client, app):
        alice = make_user(app, "alice")
        token = token_for(app, alice["id"], expires_in=timedelta(minutes=-1))
        resp = client.get(
            "/api/v1/sharing/lookup",
            query_string={"email": "bob@test.com"},
            headers=auth_headers(token),
        )
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_EXPIRED"
