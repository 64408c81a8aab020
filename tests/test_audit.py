import pytest

from tenantbot.core.audit import AuditedAction, log_audit
from tenantbot.core.errors import NotFoundError, UnauthorizedError
from tenantbot.core.security import REDACTED
from tenantbot.models.schemas import AuditStatus


async def test_log_audit_redacts_changes(db, supabase):
    await log_audit(
        db,
        user_id="user-1",
        action="update_bot_config",
        resource_type="bot_profile",
        status=AuditStatus.SUCCESS,
        before={"api_key": "sk-old"},
        after={"api_key": "sk-new", "model_id": "gpt"},
        timestamp=123,
    )
    [row] = supabase.rows("audit_logs")
    assert row["status"] == "success"
    assert row["timestamp"] == 123
    assert row["changes"] == {
        "before": {"api_key": REDACTED},
        "after": {"api_key": REDACTED, "model_id": "gpt"},
    }


async def test_log_audit_without_changes(db, supabase):
    await log_audit(db, user_id="u", action="a", resource_type="r", status="denied")
    [row] = supabase.rows("audit_logs")
    assert row["changes"] is None
    assert row["status"] == "denied"


async def test_audited_action_success(db, supabase, org_member):
    async with AuditedAction(db, org_member, "do_thing", "thing") as audit:
        audit.resource_id = "t-1"
        audit.after = {"token": "abc"}

    [row] = supabase.rows("audit_logs")
    assert row["status"] == "success"
    assert row["organization_id"] == "org-1"
    assert row["resource_id"] == "t-1"
    assert row["changes"]["after"] == {"token": REDACTED}


@pytest.mark.parametrize("error,status", [
    (UnauthorizedError("Unauthorized: Nope"), "denied"),
    (NotFoundError("Gone"), "error"),
    (ValueError("bad input"), "error"),
])
async def test_audited_action_failure_is_logged_and_reraised(db, supabase, owner, error, status):
    with pytest.raises(type(error)):
        async with AuditedAction(db, owner, "do_thing", "thing"):
            raise error

    [row] = supabase.rows("audit_logs")
    assert row["status"] == status
    assert row["error_message"] == str(error)


async def test_audit_write_failure_keeps_original_error(db, supabase, owner):
    supabase.fail_tables["audit_logs"] = RuntimeError("audit store down")
    with pytest.raises(ValueError, match="bad input"):
        async with AuditedAction(db, owner, "do_thing", "thing"):
            raise ValueError("bad input")


async def test_audit_write_failure_on_success_propagates(db, supabase, owner):
    supabase.fail_tables["audit_logs"] = RuntimeError("audit store down")
    with pytest.raises(RuntimeError, match="audit store down"):
        async with AuditedAction(db, owner, "do_thing", "thing"):
            pass
