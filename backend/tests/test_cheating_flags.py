from unittest.mock import patch

import pytest

from app.core.exceptions import ValidationError
from app.models.cheating_flag import ExamCheatingFlag
from app.models.security_metrics import ExamSecurityMetrics
from app.services.cheating_flags import CheatingFlagService


class TestEnsureOpenFlag:
    def test_creates_once(self, db, submission):
        service = CheatingFlagService(db)

        first, created = service.ensure_open_flag(submission, reason="Excessive violations", severity="critical")
        second, created_again = service.ensure_open_flag(submission, reason="Excessive violations")

        assert created is True
        assert created_again is False
        assert first.id == second.id
        assert db.query(ExamCheatingFlag).count() == 1

    def test_closed_flag_allows_new_one(self, db, submission):
        service = CheatingFlagService(db)
        flag, _ = service.ensure_open_flag(submission, reason="first")
        flag.flag_status = "dismissed"
        db.commit()

        new_flag, created = service.ensure_open_flag(submission, reason="second")

        assert created is True
        assert new_flag.id != flag.id

    def test_unique_index_rejects_second_open_flag(self, db, submission):
        """Two writers that both missed the existing flag cannot both insert"""
        service = CheatingFlagService(db)
        winner, _ = service.ensure_open_flag(submission, reason="first")

        with patch.object(CheatingFlagService, "get_open_flag", side_effect=[None, winner]):
            flag, created = service.ensure_open_flag(submission, reason="racing")

        assert created is False
        assert flag.id == winner.id
        assert db.query(ExamCheatingFlag).count() == 1

    def test_notification_dispatch_failure_is_logged(self, db, submission):
        with patch("app.tasks.monitoring.notify_cheating_flag") as task:
            task.delay.side_effect = RuntimeError("broker down")
            flag, created = CheatingFlagService(db).ensure_open_flag(submission, reason="x")

        assert created is True
        assert flag.teacher_notified is False

    def test_invalid_status_filter(self, db, exam):
        with pytest.raises(ValidationError):
            CheatingFlagService(db).list_exam_flags(exam.id, status="bogus")


class TestFlagCheatingApi:
    """POST/GET /monitoring/flag-cheating"""

    def payload(self, submission, **extra):
        body = {
            "submissionId": submission.id,
            "examId": submission.exam_id,
            "studentId": submission.student_id,
            "reason": "Phone visible on camera",
            "severity": "high",
            "details": {"source": "proctor"},
            "violationsCount": 2,
        }
        body.update(extra)
        return body

    def test_missing_fields(self, client):
        response = client.post("/api/v1/monitoring/flag-cheating", json={"examId": "x"})
        assert response.status_code == 400
        assert response.json()["error"] == "Missing required fields: submissionId, examId, reason"

    def test_create_then_update(self, client, db, submission):
        first = client.post("/api/v1/monitoring/flag-cheating", json=self.payload(submission)).json()
        second = client.post(
            "/api/v1/monitoring/flag-cheating",
            json=self.payload(submission, details={"source": "second look"}, violationsCount=4),
        ).json()

        assert first["isNew"] is True
        assert first["message"] == "Cheating flag created successfully"
        assert second["isNew"] is False
        assert second["flagId"] == first["flagId"]
        assert second["message"] == "Existing flag updated"

        db.expire_all()
        flag = db.query(ExamCheatingFlag).one()
        assert flag.flag_details == {"source": "second look"}
        assert flag.violations_count == 4
        assert flag.auto_flagged is True
        metrics = db.query(ExamSecurityMetrics).one()
        assert metrics.is_flagged_for_review is True

    def test_submission_of_other_exam(self, client, submission, make_exam):
        other = make_exam()
        response = client.post(
            "/api/v1/monitoring/flag-cheating",
            json=self.payload(submission, examId=other.id),
        )
        assert response.status_code == 404

    def test_list_for_exam(self, client, submission, make_submission, exam):
        client.post("/api/v1/monitoring/flag-cheating", json=self.payload(submission))
        other = make_submission(exam, student_id="student-2")
        client.post("/api/v1/monitoring/flag-cheating", json=self.payload(other, reason="Second"))

        body = client.get("/api/v1/monitoring/flag-cheating", params={"examId": exam.id}).json()

        assert body["count"] == 2
        assert [flag["flag_reason"] for flag in body["flags"]] == ["Second", "Phone visible on camera"]

        pending = client.get(
            "/api/v1/monitoring/flag-cheating", params={"examId": exam.id, "status": "reviewed"}
        ).json()
        assert pending["count"] == 0

    def test_list_requires_exam(self, client):
        assert client.get("/api/v1/monitoring/flag-cheating").status_code == 400
