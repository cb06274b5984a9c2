"""
Report API tests — drafts, field patches, status changes.

Covers:
  - draft creation (numbering, scope, role checks)
  - optimistic concurrency (expectedVersion on every mutation)
  - silent field filtering and the critical-field reason rule
  - status transitions, report numbering, allowed-target listing
"""

from datetime import datetime, timezone

from conftest import headers, reload
from labflow.models.audit import AuditLog
from labflow.models.report import Report

CLIENT = headers("client-1", "CLIENT", "ACME")
OTHER_CLIENT = headers("client-2", "CLIENT", "GLOBEX")
CHEMIST = headers("chem-1", "CHEMISTRY")
FRONTDESK = headers("fd-1", "FRONTDESK")
ADMIN = headers("admin-1", "ADMIN")

YEAR = datetime.now(timezone.utc).year


def _create(http, form_type="CHEMISTRY_MIX", **fields):
    res = http.post("/api/v1/reports", json={"formType": form_type, **fields}, headers=CLIENT)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# Creation & reads
# ═════════════════════════════════════════════════════════════════════════════

class TestCreateDraft:
    def test_client_creates_draft_at_version_zero(self, client):
        body = _create(client, client="Acme Labs", lotBatchNo="LB-1")
        assert body["status"] == "DRAFT"
        assert body["version"] == 0
        assert body["client_code"] == "ACME"
        assert body["form_number"] == f"ACME-{YEAR}0001"
        assert body["report_number"] is None
        assert body["fields"] == {"client": "Acme Labs", "lotBatchNo": "LB-1"}

    def test_form_numbers_are_sequential_per_client(self, client):
        _create(client)
        second = _create(client, form_type="MICRO_MIX")
        assert second["form_number"] == f"ACME-{YEAR}0002"

    def test_client_cannot_create_for_another_client(self, client):
        res = client.post(
            "/api/v1/reports",
            json={"formType": "COA", "clientCode": "GLOBEX"},
            headers=CLIENT,
        )
        assert res.status_code == 201
        assert res.get_json()["client_code"] == "ACME"

    def test_admin_must_name_client_code(self, client):
        res = client.post("/api/v1/reports", json={"formType": "COA"}, headers=ADMIN)
        assert res.status_code == 422
        res = client.post("/api/v1/reports", json={"formType": "COA", "clientCode": "GLOBEX"}, headers=ADMIN)
        assert res.status_code == 201
        assert res.get_json()["client_code"] == "GLOBEX"

    def test_lab_roles_cannot_create(self, client):
        res = client.post("/api/v1/reports", json={"formType": "COA"}, headers=CHEMIST)
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_unknown_form_type(self, client):
        res = client.post("/api/v1/reports", json={"formType": "STERILITY"}, headers=CLIENT)
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_reserved_keys_are_not_stored_as_fields(self, client):
        body = _create(client, status="LOCKED", version=9, lotBatchNo="LB-2")
        assert body["status"] == "DRAFT"
        assert body["version"] == 0
        assert body["fields"] == {"lotBatchNo": "LB-2"}

    def test_create_writes_audit_row(self, client):
        body = _create(client)
        log = AuditLog.query.filter_by(entity_id=body["id"], action="report.create").one()
        assert log.user_id == "client-1"
        assert log.role == "CLIENT"

    def test_missing_identity_is_401(self, client):
        res = client.post("/api/v1/reports", json={"formType": "COA"})
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_AUTHENTICATION"


class TestReads:
    def test_get_includes_corrections(self, client):
        body = _create(client)
        res = client.get(f"/api/v1/reports/{body['id']}", headers=CLIENT)
        assert res.status_code == 200
        assert res.get_json()["corrections"] == []

    def test_other_client_sees_not_found(self, client):
        body = _create(client)
        res = client.get(f"/api/v1/reports/{body['id']}", headers=OTHER_CLIENT)
        assert res.status_code == 404

    def test_list_is_scoped_and_filterable(self, client, make_report):
        _create(client)
        _create(client, form_type="MICRO_MIX")
        make_report(client_code="GLOBEX")
        mine = client.get("/api/v1/reports", headers=CLIENT).get_json()
        assert mine["total"] == 2
        micro = client.get("/api/v1/reports?formType=MICRO_MIX", headers=CLIENT).get_json()
        assert micro["total"] == 1
        everything = client.get("/api/v1/reports", headers=ADMIN).get_json()
        assert everything["total"] == 3
        globex = client.get("/api/v1/reports?clientCode=GLOBEX", headers=ADMIN).get_json()
        assert globex["total"] == 1

    def test_unknown_report_404(self, client):
        res = client.get("/api/v1/reports/does-not-exist", headers=ADMIN)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


# ═════════════════════════════════════════════════════════════════════════════
# Concurrency: the draft → edit → stale transition → retry walk-through
# ═════════════════════════════════════════════════════════════════════════════

def test_stale_transition_rejected_then_retry_succeeds(client):
    body = _create(client)
    rid = body["id"]
    assert body["version"] == 0

    res = client.patch(f"/api/v1/reports/{rid}", json={"expectedVersion": 0, "lotBatchNo": "LB-9"}, headers=CLIENT)
    assert res.status_code == 200
    assert res.get_json()["version"] == 1

    stale = client.patch(
        f"/api/v1/reports/{rid}/status",
        json={"status": "SUBMITTED_BY_CLIENT", "expectedVersion": 0},
        headers=CLIENT,
    )
    assert stale.status_code == 409
    err = stale.get_json()
    assert err["code"] == "ERR_CONFLICT_VERSION"
    assert err["details"] == {"expected_version": 0, "current_version": 1}
    assert reload(Report, rid).version == 1

    retry = client.patch(
        f"/api/v1/reports/{rid}/status",
        json={"status": "SUBMITTED_BY_CLIENT", "expectedVersion": 1},
        headers=CLIENT,
    )
    assert retry.status_code == 200
    assert retry.get_json()["version"] == 2
    assert retry.get_json()["status"] == "SUBMITTED_BY_CLIENT"


def test_version_check_runs_before_authorization(client, make_report):
    report = make_report(status="UNDER_TESTING_REVIEW", version=3)
    # a stale FRONTDESK caller learns about the conflict, not the missing permission
    res = client.patch(f"/api/v1/reports/{report.id}", json={"expectedVersion": 2, "sop": "x"}, headers=FRONTDESK)
    assert res.status_code == 409


class TestExpectedVersionInput:
    def test_missing(self, client):
        rid = _create(client)["id"]
        res = client.patch(f"/api/v1/reports/{rid}", json={"lotBatchNo": "x"}, headers=CLIENT)
        assert res.status_code == 422
        assert "expectedVersion" in res.get_json()["details"]

    def test_not_an_integer(self, client):
        rid = _create(client)["id"]
        for bad in ("abc", True, -1, "1.5"):
            res = client.patch(f"/api/v1/reports/{rid}", json={"expectedVersion": bad}, headers=CLIENT)
            assert res.status_code == 422

    def test_fractional_version_is_not_truncated(self, client):
        rid = _create(client)["id"]
        for bad in (0.7, 0.0, "0.7", "\u00b2"):
            res = client.patch(f"/api/v1/reports/{rid}", json={"expectedVersion": bad, "lotBatchNo": "x"}, headers=CLIENT)
            assert res.status_code == 422
        assert reload(Report, rid).version == 0

    def test_digit_string_accepted(self, client):
        rid = _create(client)["id"]
        res = client.patch(f"/api/v1/reports/{rid}", json={"expectedVersion": " 0 ", "lotBatchNo": "x"}, headers=CLIENT)
        assert res.status_code == 200
        assert res.get_json()["version"] == 1

    def test_snake_case_alias(self, client):
        rid = _create(client)["id"]
        res = client.patch(f"/api/v1/reports/{rid}", json={"expected_version": 0, "lotBatchNo": "x"}, headers=CLIENT)
        assert res.status_code == 200


# ═════════════════════════════════════════════════════════════════════════════
# Field patches
# ═════════════════════════════════════════════════════════════════════════════

class TestPatchFields:
    def test_unauthorized_keys_are_dropped(self, client, make_report):
        report = make_report(status="UNDER_TESTING_REVIEW", version=2, data={"client": "Acme Labs"})
        res = client.patch(
            f"/api/v1/reports/{report.id}",
            json={"expectedVersion": 2, "sop": "SOP-12", "client": "Evil Corp"},
            headers=CHEMIST,
        )
        assert res.status_code == 200
        body = res.get_json()
        assert body["applied_fields"] == ["sop"]
        assert body["dropped_fields"] == ["client"]
        assert body["fields"] == {"client": "Acme Labs", "sop": "SOP-12"}
        assert body["version"] == 3

    def test_fields_envelope_accepted(self, client, make_report):
        report = make_report(status="UNDER_TESTING_REVIEW", version=0)
        res = client.patch(
            f"/api/v1/reports/{report.id}",
            json={"expectedVersion": 0, "fields": {"sop": "SOP-1"}},
            headers=CHEMIST,
        )
        assert res.status_code == 200
        assert res.get_json()["fields"]["sop"] == "SOP-1"

    def test_fully_dropped_patch_is_a_no_op(self, client, make_report):
        report = make_report(status="UNDER_TESTING_REVIEW", version=2)
        res = client.patch(
            f"/api/v1/reports/{report.id}",
            json={"expectedVersion": 2, "client": "Evil Corp"},
            headers=CHEMIST,
        )
        assert res.status_code == 200
        body = res.get_json()
        assert body["version"] == 2
        assert body["applied_fields"] == []
        assert AuditLog.query.filter_by(action="report.update").count() == 0

    def test_role_without_edit_rights_is_forbidden(self, client, make_report):
        report = make_report(status="UNDER_TESTING_REVIEW", version=1)
        res = client.patch(f"/api/v1/reports/{report.id}", json={"expectedVersion": 1, "sop": "x"}, headers=FRONTDESK)
        assert res.status_code == 403
        assert reload(Report, report.id).version == 1

    def test_critical_field_needs_reason(self, client, make_report):
        report = make_report(status="UNDER_TESTING_REVIEW", version=1)
        url = f"/api/v1/reports/{report.id}"
        res = client.patch(url, json={"expectedVersion": 1, "testedBy": "chem-1"}, headers=CHEMIST)
        assert res.status_code == 422
        assert res.get_json()["details"]["critical_fields"] == ["testedBy"]
        assert reload(Report, report.id).version == 1

        res = client.patch(
            url,
            json={"expectedVersion": 1, "testedBy": "chem-1"},
            headers={**CHEMIST, "X-Change-Reason": "Analyst sign-off"},
        )
        assert res.status_code == 200
        log = AuditLog.query.filter_by(entity_id=report.id, action="report.update").one()
        assert log.reason == "Analyst sign-off"
        assert log.changes == {"testedBy": {"old": None, "new": "chem-1"}}

    def test_dates_are_normalised(self, client):
        rid = _create(client)["id"]
        res = client.patch(
            f"/api/v1/reports/{rid}",
            json={"expectedVersion": 0, "dateSent": "18.10.2026", "manufactureDate": "NA"},
            headers=CLIENT,
        )
        assert res.status_code == 200
        fields = res.get_json()["fields"]
        assert fields["dateSent"] == "2026-10-18"
        assert fields["manufactureDate"] is None

    def test_invalid_date_rejected(self, client):
        rid = _create(client)["id"]
        res = client.patch(f"/api/v1/reports/{rid}", json={"expectedVersion": 0, "dateSent": "soon"}, headers=CLIENT)
        assert res.status_code == 422
        assert "dateSent" in res.get_json()["details"]

    def test_locked_report_cannot_be_edited(self, client, make_report):
        report = make_report(status="LOCKED", version=12)
        res = client.patch(f"/api/v1/reports/{report.id}", json={"expectedVersion": 12, "comments": "x"}, headers=ADMIN)
        assert res.status_code == 403


# ═════════════════════════════════════════════════════════════════════════════
# Status changes
# ═════════════════════════════════════════════════════════════════════════════

class TestStatusChange:
    def test_testing_start_assigns_report_number(self, client, make_report):
        report = make_report(status="SUBMITTED_BY_CLIENT", version=1)
        res = client.patch(
            f"/api/v1/reports/{report.id}/status",
            json={"targetStatus": "UNDER_TESTING_REVIEW", "expectedVersion": 1},
            headers=CHEMIST,
        )
        assert res.status_code == 200
        body = res.get_json()
        assert body["report_number"] == f"BC-{YEAR}0001"
        assert body["version"] == 2

    def test_micro_department_prefix(self, client, make_report):
        report = make_report(form_type="MICRO_MIX", status="SUBMITTED_BY_CLIENT", version=1)
        res = client.patch(
            f"/api/v1/reports/{report.id}/status",
            json={"targetStatus": "UNDER_PRELIMINARY_TESTING_REVIEW", "expectedVersion": 1},
            headers=headers("micro-1", "MICRO"),
        )
        assert res.status_code == 200
        assert res.get_json()["report_number"] == f"OM-{YEAR}0001"

    def test_role_not_in_can_set_is_forbidden(self, client, make_report):
        report = make_report(status="SUBMITTED_BY_CLIENT", version=1)
        res = client.patch(
            f"/api/v1/reports/{report.id}/status",
            json={"targetStatus": "UNDER_TESTING_REVIEW", "expectedVersion": 1},
            headers=FRONTDESK,
        )
        assert res.status_code == 403
        assert reload(Report, report.id).status == "SUBMITTED_BY_CLIENT"

    def test_target_outside_next_is_forbidden(self, client, make_report):
        report = make_report(status="SUBMITTED_BY_CLIENT", version=1)
        res = client.patch(
            f"/api/v1/reports/{report.id}/status",
            json={"targetStatus": "APPROVED", "expectedVersion": 1},
            headers=CHEMIST,
        )
        assert res.status_code == 403

    def test_unknown_status_is_validation_error(self, client, make_report):
        report = make_report(status="SUBMITTED_BY_CLIENT", version=1)
        res = client.patch(
            f"/api/v1/reports/{report.id}/status",
            json={"targetStatus": "UNDER_PRELIMINARY_TESTING_REVIEW", "expectedVersion": 1},
            headers=CHEMIST,
        )
        assert res.status_code == 422

    def test_correction_target_must_use_corrections_endpoint(self, client, make_report):
        report = make_report(status="UNDER_TESTING_REVIEW", version=1)
        res = client.patch(
            f"/api/v1/reports/{report.id}/status",
            json={"targetStatus": "TESTING_NEEDS_CORRECTION", "expectedVersion": 1},
            headers=CHEMIST,
        )
        assert res.status_code == 422
        assert reload(Report, report.id).version == 1

    def test_status_change_audited(self, client, make_report):
        report = make_report(status="UNDER_TESTING_REVIEW", version=1)
        client.patch(
            f"/api/v1/reports/{report.id}/status",
            json={"targetStatus": "TESTING_ON_HOLD", "expectedVersion": 1, "reason": "Reagent backorder"},
            headers=CHEMIST,
        )
        log = AuditLog.query.filter_by(entity_id=report.id, action="report.status_change").one()
        assert log.reason == "Reagent backorder"
        assert log.changes == {"status": {"old": "UNDER_TESTING_REVIEW", "new": "TESTING_ON_HOLD"}}


def test_allowed_transitions_listing(client, make_report):
    report = make_report(status="UNDER_TESTING_REVIEW", version=1)
    res = client.get(f"/api/v1/reports/{report.id}/transitions", headers=CHEMIST)
    assert res.status_code == 200
    items = {i["status"]: i for i in res.get_json()["items"]}
    assert set(items) == {"TESTING_ON_HOLD", "TESTING_NEEDS_CORRECTION", "UNDER_ADMIN_REVIEW"}
    assert items["TESTING_NEEDS_CORRECTION"]["requires_corrections"] is True
    assert items["UNDER_ADMIN_REVIEW"]["requires_esign"] is False

    res = client.get(f"/api/v1/reports/{report.id}/transitions", headers=FRONTDESK)
    assert res.get_json()["items"] == []
