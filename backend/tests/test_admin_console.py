"""
Admin console tests: operator guard, plan reassignment, direct field edits,
cascading delete (scope and rollback), role management and webhook info.
"""
import pytest
from datetime import datetime, timezone

from conftest import add_user, auth_headers
from database import USER_OWNED_COLLECTIONS
from services.account_service import cascade_delete_account
from services.role_service import LastOperatorError, revoke_operator_role


@pytest.fixture
def owner(fake_db):
    return add_user(fake_db, email="owner@example.com", operator=True,
                    member_since=datetime(2023, 1, 1, tzinfo=timezone.utc))


@pytest.fixture
def owner_headers(owner):
    return auth_headers(owner["user_id"], owner["email"])


def _seed_owned_records(db, user_id):
    for name in USER_OWNED_COLLECTIONS:
        db[name].docs.append({"user_id": user_id, "marker": name})


class TestGuard:

    def test_unauthenticated_is_401(self, client, fake_db):
        assert client.get("/api/admin/users").status_code == 401

    def test_non_operator_is_403(self, client, fake_db):
        user = add_user(fake_db, plan="premium")

        response = client.get("/api/admin/users", headers=auth_headers(user["user_id"]))

        assert response.status_code == 403
        assert response.json()["detail"] == "Insufficient permissions"

    def test_premium_plan_is_not_operator(self, client, fake_db):
        user = add_user(fake_db, plan="premium")
        target = add_user(fake_db, email="t@example.com")

        response = client.put(
            f"/api/admin/users/{target['user_id']}/plan",
            json={"plan": "premium"},
            headers=auth_headers(user["user_id"]),
        )

        assert response.status_code == 403
        assert fake_db.users.docs[1]["plan"] == "free"


class TestUsers:

    def test_list_newest_members_first(self, client, fake_db, owner_headers):
        add_user(fake_db, email="old@example.com", member_since=datetime(2024, 1, 1, tzinfo=timezone.utc))
        add_user(fake_db, email="new@example.com", member_since=datetime(2025, 1, 1, tzinfo=timezone.utc))

        data = client.get("/api/admin/users", headers=owner_headers).json()

        assert [u["email"] for u in data["users"]] == ["new@example.com", "old@example.com", "owner@example.com"]
        assert data["total"] == 3
        assert "affiliate_demo" in [p["plan"] for p in data["plans"]]

    def test_get_user(self, client, fake_db, owner_headers):
        target = add_user(fake_db, email="t@example.com")

        response = client.get(f"/api/admin/users/{target['user_id']}", headers=owner_headers)

        assert response.status_code == 200
        assert response.json()["email"] == "t@example.com"
        assert "_id" not in response.json()

    def test_get_missing_user(self, client, fake_db, owner_headers):
        assert client.get("/api/admin/users/nope", headers=owner_headers).status_code == 404


class TestPlanReassignment:

    def test_premium_advances_plan_updated_at_and_last_payment(self, client, fake_db, owner_headers):
        old = datetime(2024, 1, 1, tzinfo=timezone.utc)
        target = add_user(fake_db, email="t@example.com", plan_updated_at=old, last_payment=old)

        response = client.put(
            f"/api/admin/users/{target['user_id']}/plan",
            json={"plan": "premium"},
            headers=owner_headers,
        )

        assert response.status_code == 200
        stored = next(d for d in fake_db.users.docs if d["user_id"] == target["user_id"])
        assert stored["plan"] == "premium"
        assert stored["plan_updated_at"] > old
        assert stored["last_payment"] > old

    @pytest.mark.parametrize("plan", ["free", "affiliate_demo"])
    def test_non_premium_leaves_last_payment(self, client, fake_db, owner_headers, plan):
        paid_at = datetime(2024, 2, 1, tzinfo=timezone.utc)
        target = add_user(fake_db, email="t@example.com", plan="premium", last_payment=paid_at)

        response = client.put(
            f"/api/admin/users/{target['user_id']}/plan",
            json={"plan": plan},
            headers=owner_headers,
        )

        assert response.status_code == 200
        stored = next(d for d in fake_db.users.docs if d["user_id"] == target["user_id"])
        assert stored["plan"] == plan
        assert stored["last_payment"] == paid_at

    def test_invalid_plan_is_400(self, client, fake_db, owner_headers):
        target = add_user(fake_db, email="t@example.com")

        response = client.put(
            f"/api/admin/users/{target['user_id']}/plan",
            json={"plan": "platinum"},
            headers=owner_headers,
        )

        assert response.status_code == 400
        assert next(d for d in fake_db.users.docs if d["user_id"] == target["user_id"])["plan"] == "free"

    def test_missing_user_is_404(self, client, fake_db, owner_headers):
        response = client.put("/api/admin/users/nope/plan", json={"plan": "premium"}, headers=owner_headers)
        assert response.status_code == 404

    def test_change_is_visible_in_audit_trail(self, client, fake_db, owner, owner_headers):
        target = add_user(fake_db, email="t@example.com")
        client.put(f"/api/admin/users/{target['user_id']}/plan", json={"plan": "premium"}, headers=owner_headers)

        data = client.get(f"/api/admin/users/{target['user_id']}/audit", headers=owner_headers).json()

        assert data["returned"] == 1
        entry = data["items"][0]
        assert entry["action"] == "PLAN_CHANGED"
        assert entry["actor_id"] == owner["user_id"]
        assert entry["metadata"]["source"] == "admin"


class TestProfileEdits:

    def test_last_payment_override_is_applied_and_audited(self, client, fake_db, owner_headers):
        target = add_user(fake_db, email="t@example.com")

        response = client.patch(
            f"/api/admin/users/{target['user_id']}",
            json={"last_payment": "2024-05-01T12:00:00Z"},
            headers=owner_headers,
        )

        assert response.status_code == 200
        stored = next(d for d in fake_db.users.docs if d["user_id"] == target["user_id"])
        assert stored["last_payment"] == datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
        assert stored["plan"] == "free"
        assert fake_db.audit_logs.docs[-1]["action"] == "ADMIN_LAST_PAYMENT_OVERRIDE"

    def test_identity_fields_edit(self, client, fake_db, owner_headers):
        target = add_user(fake_db, email="t@example.com")

        response = client.patch(
            f"/api/admin/users/{target['user_id']}",
            json={"name": "Novo Nome", "whatsapp": "+55 11 99999-0000"},
            headers=owner_headers,
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Novo Nome"
        assert fake_db.audit_logs.docs[-1]["action"] == "ADMIN_PROFILE_EDITED"

    def test_edit_never_writes_plan(self, client, fake_db, owner_headers):
        target = add_user(fake_db, email="t@example.com")

        client.patch(
            f"/api/admin/users/{target['user_id']}",
            json={"name": "X", "plan": "premium"},
            headers=owner_headers,
        )

        assert next(d for d in fake_db.users.docs if d["user_id"] == target["user_id"])["plan"] == "free"


class TestCascadeDelete:

    def test_removes_only_target_records_and_keeps_credential(self, client, fake_db, owner_headers):
        target = add_user(fake_db, email="t@example.com")
        bystander = add_user(fake_db, email="b@example.com")
        _seed_owned_records(fake_db, target["user_id"])
        _seed_owned_records(fake_db, bystander["user_id"])
        fake_db.credentials.docs.append({"user_id": target["user_id"], "email_lower": "t@example.com"})

        response = client.delete(f"/api/admin/users/{target['user_id']}", headers=owner_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["credential_retained"] is True
        assert data["deleted"]["users"] == 1
        for name in USER_OWNED_COLLECTIONS:
            assert data["deleted"][name] == 1
            assert [d["user_id"] for d in fake_db[name].docs] == [bystander["user_id"]]
        assert target["user_id"] not in [d["user_id"] for d in fake_db.users.docs]
        assert len(fake_db.credentials.docs) == 1

    def test_deleted_operator_loses_role(self, client, fake_db, owner_headers):
        other_op = add_user(fake_db, email="op2@example.com", operator=True)

        client.delete(f"/api/admin/users/{other_op['user_id']}", headers=owner_headers)

        assert other_op["user_id"] not in [r["user_id"] for r in fake_db.admin_roles.docs]

    def test_operator_cannot_delete_self(self, client, fake_db, owner, owner_headers):
        response = client.delete(f"/api/admin/users/{owner['user_id']}", headers=owner_headers)

        assert response.status_code == 409
        assert owner["user_id"] in [d["user_id"] for d in fake_db.users.docs]

    def test_missing_user_is_404(self, client, fake_db, owner_headers):
        assert client.delete("/api/admin/users/nope", headers=owner_headers).status_code == 404

    @pytest.mark.asyncio
    async def test_failure_mid_batch_rolls_back_everything(self, fake_db):
        target = add_user(fake_db, email="t@example.com")
        _seed_owned_records(fake_db, target["user_id"])
        fake_db.admin_roles.docs.append({"user_id": target["user_id"], "role": "ROLE_OWNER"})
        fake_db.users.fail_on.add("delete_one")
        before = fake_db.snapshot()

        with pytest.raises(RuntimeError):
            await cascade_delete_account(target["user_id"], actor_id="op")

        after = fake_db.snapshot()
        for name in (*USER_OWNED_COLLECTIONS, "admin_roles", "users"):
            assert after[name] == before[name]
        assert len(fake_db.trades.docs) == 1


class TestRoles:

    def test_grant_and_list(self, client, fake_db, owner_headers):
        target = add_user(fake_db, email="t@example.com")

        response = client.post("/api/admin/roles", json={"user_id": target["user_id"]}, headers=owner_headers)

        assert response.status_code == 201
        assert response.json()["created"] is True
        roles = client.get("/api/admin/roles", headers=owner_headers).json()["roles"]
        assert target["user_id"] in [r["user_id"] for r in roles]
        # New operator passes the guard
        assert client.get("/api/admin/users", headers=auth_headers(target["user_id"])).status_code == 200

    def test_grant_is_idempotent(self, client, fake_db, owner, owner_headers):
        response = client.post("/api/admin/roles", json={"user_id": owner["user_id"]}, headers=owner_headers)

        assert response.json()["created"] is False
        assert len(fake_db.admin_roles.docs) == 1

    def test_grant_unknown_user_is_404(self, client, fake_db, owner_headers):
        assert client.post("/api/admin/roles", json={"user_id": "nope"}, headers=owner_headers).status_code == 404

    def test_cannot_revoke_last_operator(self, client, fake_db, owner, owner_headers):
        response = client.delete(f"/api/admin/roles/{owner['user_id']}", headers=owner_headers)

        assert response.status_code == 409
        assert len(fake_db.admin_roles.docs) == 1

    def test_revoke_other_operator(self, client, fake_db, owner_headers):
        other = add_user(fake_db, email="op2@example.com", operator=True)

        response = client.delete(f"/api/admin/roles/{other['user_id']}", headers=owner_headers)

        assert response.status_code == 200
        assert other["user_id"] not in [r["user_id"] for r in fake_db.admin_roles.docs]

    def test_revoke_unknown_role_is_404(self, client, fake_db, owner_headers):
        assert client.delete("/api/admin/roles/nope", headers=owner_headers).status_code == 404
        assert len(fake_db.admin_roles.docs) == 1

    @pytest.mark.asyncio
    async def test_last_operator_delete_is_rolled_back(self, fake_db, owner):
        with pytest.raises(LastOperatorError):
            await revoke_operator_role(owner["user_id"], revoked_by=owner["user_id"])

        assert [r["user_id"] for r in fake_db.admin_roles.docs] == [owner["user_id"]]
        assert [e["action"] for e in fake_db.audit_logs.docs] == []

    @pytest.mark.asyncio
    async def test_every_revoke_bumps_the_role_lock(self, fake_db, owner):
        second = add_user(fake_db, email="op2@example.com", operator=True)
        third = add_user(fake_db, email="op3@example.com", operator=True)

        assert await revoke_operator_role(second["user_id"], revoked_by=owner["user_id"]) is True
        assert await revoke_operator_role(third["user_id"], revoked_by=owner["user_id"]) is True

        [lock] = fake_db.locks.docs
        assert lock["name"] == "admin_roles"
        assert lock["version"] == 2
        assert [r["user_id"] for r in fake_db.admin_roles.docs] == [owner["user_id"]]
        assert [e["action"] for e in fake_db.audit_logs.docs] == ["ROLE_REVOKED", "ROLE_REVOKED"]

    @pytest.mark.asyncio
    async def test_failure_after_delete_restores_role(self, fake_db, owner):
        second = add_user(fake_db, email="op2@example.com", operator=True)
        fake_db.admin_roles.fail_on.add("count_documents")

        with pytest.raises(RuntimeError):
            await revoke_operator_role(second["user_id"], revoked_by=owner["user_id"])

        assert len(fake_db.admin_roles.docs) == 2


class TestWebhookInfo:

    def test_describes_endpoint(self, client, fake_db, owner_headers):
        data = client.get("/api/admin/webhook-info", headers=owner_headers).json()

        assert data["url"].endswith("/api/webhookKirvano")
        assert data["header"] == "x-kirvano-token"
        assert data["token_configured"] is True
        assert set(data["payload_example"]) == {"email", "status"}
