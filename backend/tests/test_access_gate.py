from datetime import timedelta
from unittest.mock import patch

import pytest

from app.core.exceptions import NotFoundError, ForbiddenError
from app.models.exam import ExamInvite
from app.services.access_gate import AccessGate, get_execution_type, normalize_strict_level
from app.utils.timezone import utc_now


class TestAdmissionOrder:
    def test_unknown_slug(self, db):
        with pytest.raises(NotFoundError) as exc_info:
            AccessGate(db).admit("missing", {})
        assert exc_info.value.message == "Test not found"

    def test_unpublished_exam(self, db, make_exam):
        make_exam(slug="draft", is_published=False, allowed_ip="203.0.113.5")

        with pytest.raises(ForbiddenError) as exc_info:
            AccessGate(db).admit("draft", {"x-client-ip": "198.51.100.1"})
        assert exc_info.value.message == "Test not available"

    def test_invite_checked_before_ip(self, db, make_exam):
        make_exam(slug="gated", require_invite_token=True, allowed_ip="203.0.113.5")

        with pytest.raises(ForbiddenError) as exc_info:
            AccessGate(db).admit("gated", {"x-client-ip": "198.51.100.1"}, invite_token="nope")
        assert exc_info.value.message == "Invalid or expired token"

    def test_open_exam_is_admitted(self, db, make_exam):
        exam = make_exam(slug="open")
        result = AccessGate(db).admit("open", {})
        assert result.exam.id == exam.id
        assert result.strict_level == 3


class TestIpAllowList:
    def test_listed_ip_passes(self, db, make_exam):
        make_exam(slug="lab", allowed_ip="203.0.113.5, 203.0.113.9")

        result = AccessGate(db).admit("lab", {"x-forwarded-for": "203.0.113.5"})

        assert result.client_ip == "203.0.113.5"

    def test_unlisted_ip_is_named_in_rejection(self, db, make_exam):
        make_exam(slug="lab", allowed_ip="203.0.113.5, 203.0.113.9")

        with pytest.raises(ForbiddenError) as exc_info:
            AccessGate(db).admit("lab", {"x-forwarded-for": "203.0.113.6"})

        assert "203.0.113.6" in exc_info.value.message
        assert exc_info.value.message.startswith("Access Denied: Your IP (203.0.113.6) is not authorized.")


class TestTimeWindow:
    def test_not_started(self, db, make_exam):
        make_exam(slug="later", start_time=utc_now() + timedelta(hours=2))

        AccessGate(db).admit("later", {})
        with pytest.raises(ForbiddenError):
            AccessGate(db).admit("later", {}, enforce_time_window=True)

    def test_ended(self, db, make_exam):
        make_exam(slug="past", end_time=utc_now() - timedelta(minutes=1))

        with pytest.raises(ForbiddenError) as exc_info:
            AccessGate(db).admit("past", {}, enforce_time_window=True)
        assert exc_info.value.message == "Exam has ended"


class TestInvites:
    def test_validation_without_token_reports_requirement(self, db, make_exam):
        make_exam(slug="invite-only", require_invite_token=True)

        result = AccessGate(db).admit("invite-only", {}, require_invite=False)

        assert result.invite is None
        assert result.quiz_payload()["requiresInvite"] is True

    def test_token_required_for_session(self, db, make_exam):
        make_exam(slug="invite-only", require_invite_token=True)

        with pytest.raises(ForbiddenError):
            AccessGate(db).admit("invite-only", {}, require_invite=True)

    def test_token_for_other_exam(self, db, make_exam, make_invite):
        make_exam(slug="invite-only", require_invite_token=True)
        other = make_exam(slug="other")
        invite = make_invite(other)

        with pytest.raises(ForbiddenError):
            AccessGate(db).admit("invite-only", {}, invite_token=invite.token)

    def test_revoked_token(self, db, exam, make_invite):
        invite = make_invite(exam, is_active=False)
        with pytest.raises(ForbiddenError):
            AccessGate(db).validate_invite(invite)

    def test_expired_token_is_marked(self, db, exam, make_invite):
        invite = make_invite(exam, valid_until=utc_now() - timedelta(minutes=5))

        with pytest.raises(ForbiddenError):
            AccessGate(db).validate_invite(invite)

        db.refresh(invite)
        assert invite.is_expired is True

    def test_usage_limit(self, db, exam, make_invite):
        invite = make_invite(exam, use_limit=1, use_count=1)
        with pytest.raises(ForbiddenError) as exc_info:
            AccessGate(db).validate_invite(invite)
        assert exc_info.value.message == "Token usage limit exceeded"

    def test_reusable_token_ignores_limit(self, db, exam, make_invite):
        invite = make_invite(exam, token_type="reusable", use_limit=1, use_count=5)
        assert AccessGate(db).validate_invite(invite) is invite

    def test_record_use_is_bounded(self, db, exam, make_invite):
        invite = make_invite(exam, token_type="limited", use_limit=2)
        gate = AccessGate(db)

        gate.record_invite_use(invite, client_ip="203.0.113.5")
        gate.record_invite_use(invite, client_ip="203.0.113.5")
        with pytest.raises(ForbiddenError):
            gate.record_invite_use(invite)

        stored = db.query(ExamInvite).filter(ExamInvite.id == invite.id).first()
        db.refresh(stored)
        assert stored.use_count == 2
        assert stored.first_used_at is not None
        assert stored.last_used_ip == "203.0.113.5"

    def test_inspect_token(self, db, exam, make_invite):
        invite = make_invite(exam, use_limit=3, use_count=1, student_email="s@example.com")

        info = AccessGate(db).inspect_token(invite.token)

        assert info["valid"] is True
        assert info["testId"] == exam.id
        assert info["examSlug"] == exam.slug
        assert info["usesRemaining"] == 2

    def test_inspect_unknown_token(self, db):
        with pytest.raises(NotFoundError):
            AccessGate(db).inspect_token("does-not-exist")


class TestExecutionType:
    def test_reports_exam_strictness(self, db, make_exam):
        exam = make_exam(strict_level=2, lock_screen=False)

        result = get_execution_type(db, exam.id)

        assert result == {"type": 2, "proctoring": True, "lockScreen": False, "preventTabSwitching": True}

    def test_unknown_exam_is_relaxed(self, db):
        assert get_execution_type(db, "missing") == {"type": 1}

    def test_lookup_failure_is_relaxed(self, db):
        with patch.object(db, "query", side_effect=RuntimeError("connection lost")):
            assert get_execution_type(db, "any") == {"type": 1}

    @pytest.mark.parametrize("value,expected", [(None, 1), (0, 1), (2, 2), (3, 3), (7, 1), ("x", 1)])
    def test_normalize_strict_level(self, value, expected):
        assert normalize_strict_level(value) == expected
