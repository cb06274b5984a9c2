"""
E-signature gate, locking and administrative override.

Covers:
  - gated transition without password / reason / with wrong password: no state change
  - gated transition with password + reason: applied and audited with the reason
  - locking stamps locked_at and makes the report terminal
  - override: admin only, reason always, e-sign unless the target is exempt
"""

import pytest

from conftest import PASSWORD, actor, headers, reload
from labflow.core.exceptions import AuthenticationError, ValidationError
from labflow.models.audit import AuditLog
from labflow.models.report import Report
from labflow.services.esign_service import ESignGate, ESignService

FRONTDESK = headers("fd-1", "FRONTDESK")
CLIENT = headers("client-1", "CLIENT", "ACME")
ADMIN = headers("admin-1", "ADMIN")


@pytest.fixture()
def at_frontdesk(make_report, make_user):
    make_user("fd-1", "FRONTDESK")
    return make_report(status="RECEIVED_BY_FRONTDESK", version=6)


def _release(client, report_id, **body):
    return client.patch(
        f"/api/v1/reports/{report_id}/status",
        json={"targetStatus": "UNDER_CLIENT_REVIEW", "expectedVersion": 6, **body},
        headers=FRONTDESK,
    )


def _assert_untouched(report_id):
    fresh = reload(Report, report_id)
    assert fresh.status == "RECEIVED_BY_FRONTDESK"
    assert fresh.version == 6
    assert AuditLog.query.filter_by(entity_id=report_id).count() == 0


class TestGatedTransition:
    def test_missing_password(self, client, at_frontdesk):
        res = _release(client, at_frontdesk.id, reason="Results released")
        assert res.status_code == 422
        assert "eSignPassword" in res.get_json()["details"]
        _assert_untouched(at_frontdesk.id)

    def test_missing_reason(self, client, at_frontdesk):
        res = _release(client, at_frontdesk.id, eSignPassword=PASSWORD)
        assert res.status_code == 422
        assert res.get_json()["details"] == {"reason": "required"}
        _assert_untouched(at_frontdesk.id)

    def test_wrong_password(self, client, at_frontdesk):
        res = _release(client, at_frontdesk.id, reason="Results released", eSignPassword="guess")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_AUTHENTICATION"
        _assert_untouched(at_frontdesk.id)

    def test_non_string_password_rejected(self, client, at_frontdesk):
        for bad in (12345, ["pw"], {"pw": 1}):
            res = _release(client, at_frontdesk.id, reason="Results released", eSignPassword=bad)
            assert res.status_code == 422
            assert res.get_json()["details"] == {"eSignPassword": "must be a string"}
        _assert_untouched(at_frontdesk.id)

    def test_user_without_credentials(self, client, make_report):
        report = make_report(status="RECEIVED_BY_FRONTDESK", version=6)
        res = _release(client, report.id, reason="Results released", eSignPassword=PASSWORD)
        assert res.status_code == 401

    def test_correct_password_and_reason(self, client, at_frontdesk):
        res = _release(client, at_frontdesk.id, reason="Results released", eSignPassword=PASSWORD)
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "UNDER_CLIENT_REVIEW"
        assert body["version"] == 7
        log = AuditLog.query.filter_by(entity_id=at_frontdesk.id, action="report.status_change").one()
        assert log.reason == "Results released"
        assert log.user_id == "fd-1"

    def test_password_and_reason_from_headers(self, client, at_frontdesk):
        res = client.patch(
            f"/api/v1/reports/{at_frontdesk.id}/status",
            json={"targetStatus": "UNDER_CLIENT_REVIEW", "expectedVersion": 6},
            headers={**FRONTDESK, "X-ESign-Password": PASSWORD, "X-Change-Reason": "Released"},
        )
        assert res.status_code == 200

    def test_stale_version_wins_over_missing_password(self, client, at_frontdesk):
        res = client.patch(
            f"/api/v1/reports/{at_frontdesk.id}/status",
            json={"targetStatus": "UNDER_CLIENT_REVIEW", "expectedVersion": 5},
            headers=FRONTDESK,
        )
        assert res.status_code == 409

    def test_ungated_transition_needs_no_password(self, client, at_frontdesk):
        res = client.patch(
            f"/api/v1/reports/{at_frontdesk.id}/status",
            json={"targetStatus": "FRONTDESK_ON_HOLD", "expectedVersion": 6},
            headers=FRONTDESK,
        )
        assert res.status_code == 200


class TestLocking:
    def test_client_locks_approved_report(self, client, make_report, make_user):
        make_user("client-1", "CLIENT", client_code="ACME")
        report = make_report(status="APPROVED", version=9)
        res = client.patch(
            f"/api/v1/reports/{report.id}/status",
            json={"targetStatus": "LOCKED", "expectedVersion": 9,
                  "reason": "Accepted", "eSignPassword": PASSWORD},
            headers=CLIENT,
        )
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "LOCKED"
        assert body["locked_at"] is not None

        transitions = client.get(f"/api/v1/reports/{report.id}/transitions", headers=CLIENT).get_json()
        assert transitions["items"] == []

    def test_locked_report_cannot_be_overridden(self, client, make_report, make_user):
        make_user("admin-1", "ADMIN")
        report = make_report(status="LOCKED", version=10)
        res = client.patch(
            f"/api/v1/reports/{report.id}/status/override",
            json={"targetStatus": "UNDER_QA_REVIEW", "expectedVersion": 10,
                  "reason": "Reopen", "eSignPassword": PASSWORD},
            headers=ADMIN,
        )
        assert res.status_code == 403


class TestOverride:
    def test_admin_override_to_exempt_target_without_password(self, client, make_report):
        report = make_report(form_type="MICRO_MIX", status="UNDER_QA_FINAL_REVIEW", version=4)
        res = client.patch(
            f"/api/v1/reports/{report.id}/status/override",
            json={"targetStatus": "UNDER_FINAL_TESTING_REVIEW", "expectedVersion": 4, "reason": "Retest plate"},
            headers=ADMIN,
        )
        assert res.status_code == 200
        assert res.get_json()["status"] == "UNDER_FINAL_TESTING_REVIEW"
        log = AuditLog.query.filter_by(entity_id=report.id, action="report.status_override").one()
        assert log.reason == "Retest plate"

    def test_override_to_other_target_needs_esign(self, client, make_report, make_user):
        make_user("admin-1", "ADMIN")
        report = make_report(status="UNDER_QA_REVIEW", version=4)
        url = f"/api/v1/reports/{report.id}/status/override"
        body = {"targetStatus": "RECEIVED_BY_FRONTDESK", "expectedVersion": 4, "reason": "Skip admin review"}
        assert client.patch(url, json=body, headers=ADMIN).status_code == 422
        res = client.patch(url, json={**body, "eSignPassword": PASSWORD}, headers=ADMIN)
        assert res.status_code == 200
        assert res.get_json()["version"] == 5

    def test_override_requires_reason(self, client, make_report):
        report = make_report(form_type="MICRO_MIX", status="UNDER_QA_FINAL_REVIEW", version=4)
        res = client.patch(
            f"/api/v1/reports/{report.id}/status/override",
            json={"targetStatus": "UNDER_FINAL_TESTING_REVIEW", "expectedVersion": 4},
            headers=ADMIN,
        )
        assert res.status_code == 422

    def test_non_admin_cannot_override(self, client, make_report):
        report = make_report(form_type="MICRO_MIX", status="UNDER_QA_FINAL_REVIEW", version=4)
        res = client.patch(
            f"/api/v1/reports/{report.id}/status/override",
            json={"targetStatus": "UNDER_FINAL_TESTING_REVIEW", "expectedVersion": 4, "reason": "x"},
            headers=headers("qa-1", "QA"),
        )
        assert res.status_code == 403

    def test_override_cannot_target_correction_status(self, client, make_report):
        report = make_report(status="UNDER_QA_REVIEW", version=4)
        res = client.patch(
            f"/api/v1/reports/{report.id}/status/override",
            json={"targetStatus": "QA_NEEDS_CORRECTION", "expectedVersion": 4, "reason": "x"},
            headers=ADMIN,
        )
        assert res.status_code == 422


class TestESignService:
    def test_verify_password(self, make_user):
        make_user("qa-7", "QA")
        svc = ESignService()
        assert svc.verify_password("qa-7", PASSWORD) is True
        assert svc.verify_password("qa-7", "nope") is False
        assert svc.verify_password("nobody", PASSWORD) is False
        assert svc.verify_password("qa-7", "") is False
        assert svc.verify_password("qa-7", 12345) is False

    def test_inactive_user_cannot_sign(self, make_user, session):
        user = make_user("qa-8", "QA")
        user.active = False
        session.commit()
        assert ESignService().verify_password("qa-8", PASSWORD) is False

    def test_gate_order(self, make_user):
        make_user("qa-9", "QA")
        gate = ESignGate(ESignService())
        signer = actor("qa-9", "QA")
        with pytest.raises(ValidationError):
            gate.require(signer, PASSWORD, None)
        with pytest.raises(ValidationError):
            gate.require(signer, None, "reason")
        with pytest.raises(AuthenticationError):
            gate.require(signer, "wrong", "reason")
        gate.require(signer, PASSWORD, "reason")
