"""
Plan transition tests: set_plan is the only writer of `plan`.
Covers timestamp rules (plan_updated_at always, last_payment only with a
payment mark), invalid input, missing accounts and the audit trail.
"""
import pytest
from datetime import datetime, timezone

from conftest import add_user
from models import AuditResource, PlanChangeSource, UserPlan, UserRole
from services.plan_service import AccountNotFoundError, InvalidPlanError, set_plan
from utils.audit import audit_plan_change, calculate_diff, get_audit_logs_for_resource


class TestSetPlan:

    @pytest.mark.asyncio
    async def test_premium_with_payment_mark_sets_both_timestamps(self, fake_db):
        user = add_user(fake_db)
        before = datetime.now(timezone.utc)

        update = await set_plan(user["user_id"], UserPlan.PREMIUM, True, source=PlanChangeSource.CHECKOUT)

        stored = fake_db.users.docs[0]
        assert stored["plan"] == "premium"
        assert stored["plan_updated_at"] >= before
        assert stored["last_payment"] == stored["plan_updated_at"]
        assert update["last_payment"] == stored["last_payment"]

    @pytest.mark.asyncio
    async def test_downgrade_keeps_last_payment(self, fake_db):
        paid_at = datetime(2024, 3, 1, tzinfo=timezone.utc)
        user = add_user(fake_db, plan="premium", last_payment=paid_at)

        await set_plan(user["user_id"], "free", source=PlanChangeSource.WEBHOOK)

        stored = fake_db.users.docs[0]
        assert stored["plan"] == "free"
        assert stored["last_payment"] == paid_at
        assert stored["plan_updated_at"] > paid_at

    @pytest.mark.asyncio
    async def test_affiliate_demo_is_accepted_without_payment(self, fake_db):
        user = add_user(fake_db)

        update = await set_plan(user["user_id"], "affiliate_demo", source=PlanChangeSource.ADMIN)

        assert fake_db.users.docs[0]["plan"] == "affiliate_demo"
        assert "last_payment" not in update
        assert fake_db.users.docs[0]["last_payment"] is None

    @pytest.mark.asyncio
    async def test_plan_updated_at_never_precedes_member_since(self, fake_db):
        user = add_user(fake_db)
        await set_plan(user["user_id"], "premium", True, source=PlanChangeSource.ADMIN)

        stored = fake_db.users.docs[0]
        assert stored["member_since"] <= stored["plan_updated_at"] <= datetime.now(timezone.utc)

    @pytest.mark.asyncio
    async def test_unknown_plan_rejected_before_any_write(self, fake_db):
        user = add_user(fake_db)

        with pytest.raises(InvalidPlanError):
            await set_plan(user["user_id"], "gold", source=PlanChangeSource.ADMIN)

        assert fake_db.users.docs[0]["plan"] == "free"
        assert fake_db.users.docs[0]["plan_updated_at"] is None
        assert fake_db.audit_logs.docs == []

    @pytest.mark.asyncio
    async def test_missing_account(self, fake_db):
        with pytest.raises(AccountNotFoundError):
            await set_plan("no-such-user", "premium", True, source=PlanChangeSource.ADMIN)

        assert fake_db.users.docs == []

    @pytest.mark.asyncio
    async def test_transition_is_audited_with_source(self, fake_db):
        user = add_user(fake_db)

        await set_plan(
            user["user_id"], "premium", True,
            source=PlanChangeSource.ADMIN, actor_id="op-1"
        )

        [entry] = fake_db.audit_logs.docs
        assert entry["action"] == "PLAN_CHANGED"
        assert entry["resource_id"] == user["user_id"]
        assert entry["before_state"] == {"plan": "free"}
        assert entry["after_state"] == {"plan": "premium"}
        assert entry["metadata"]["source"] == "admin"
        assert entry["resource_type"] == "user"
        assert entry["metadata"]["payment_marked"] is True
        assert entry["metadata"]["diff"] == {"changed": {"plan": {"from": "free", "to": "premium"}}}

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_fail_transition(self, fake_db):
        user = add_user(fake_db)
        fake_db.audit_logs.fail_on.add("insert_one")

        await set_plan(user["user_id"], "premium", True, source=PlanChangeSource.CHECKOUT)

        assert fake_db.users.docs[0]["plan"] == "premium"


class TestAuditTrail:

    def test_diff_categories(self):
        diff = calculate_diff(
            {"plan": "free", "name": "A", "cpf": "1"},
            {"plan": "premium", "name": "A", "whatsapp": "2"},
        )
        assert diff == {
            "added": {"whatsapp": "2"},
            "removed": {"cpf": "1"},
            "changed": {"plan": {"from": "free", "to": "premium"}},
        }
        assert calculate_diff({"plan": "free"}, {"plan": "free"}) == {}

    @pytest.mark.asyncio
    async def test_plan_change_entry_from_webhook(self, fake_db):
        audit_id = await audit_plan_change(
            "u1", "premium", "free",
            source=PlanChangeSource.WEBHOOK, payment_marked=False,
        )

        [entry] = fake_db.audit_logs.docs
        assert entry["audit_id"] == audit_id
        assert entry["resource_type"] == "user"
        assert entry["actor_id"] is None
        assert entry["before_state"] == {"plan": "premium"}
        assert entry["after_state"] == {"plan": "free"}
        assert entry["metadata"]["source"] == "webhook"
        assert entry["metadata"]["payment_marked"] is False

    @pytest.mark.asyncio
    async def test_same_plan_recorded_without_diff(self, fake_db):
        await audit_plan_change(
            "u1", "premium", "premium",
            source=PlanChangeSource.ADMIN, payment_marked=True,
            actor_id="op-1", actor_role=UserRole.ROLE_OWNER,
        )

        [entry] = fake_db.audit_logs.docs
        assert entry["actor_role"] == "ROLE_OWNER"
        assert "diff" not in entry["metadata"]

    @pytest.mark.asyncio
    async def test_resource_history_is_filtered_by_type(self, fake_db):
        user = add_user(fake_db)
        await set_plan(user["user_id"], "premium", True, source=PlanChangeSource.CHECKOUT)
        fake_db.audit_logs.docs.append({"resource_type": "admin_role", "resource_id": user["user_id"]})

        history = await get_audit_logs_for_resource(AuditResource.USER, user["user_id"])

        assert [e["action"] for e in history] == ["PLAN_CHANGED"]
