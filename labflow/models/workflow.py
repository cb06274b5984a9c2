"""
Lab Report Workflow Service
Workflow definitions — roles, status enums, transition tables, edit maps.

Two report families share the same engine but have their own tables:

    micro      MICRO_MIX, MICRO_MIX_WATER     (department prefix "OM")
    chemistry  CHEMISTRY_MIX, COA             (department prefix "BC")

For every status a ``StatusTransition`` names:

    next      statuses reachable from here
    can_set   roles allowed to initiate a move out of this status
    can_edit  roles allowed to write fields while the report sits here

Tables are checked when this module is imported: a status without an
entry, a ``next`` target outside the enum or an unknown role raises
``WorkflowConfigurationError`` so the service refuses to start.

Usage:
    from labflow.models.workflow import Role, workflow_for

    wf = workflow_for("MICRO_MIX")
    wf.can_initiate(Role.QA, wf.parse_status("UNDER_QA_PRELIMINARY_REVIEW"),
                    wf.parse_status("QA_NEEDS_PRELIMINARY_CORRECTION"))
"""

from dataclasses import dataclass, field
from enum import Enum

from labflow.core.exceptions import ValidationError, WorkflowConfigurationError


class Role(str, Enum):
    SYSTEMADMIN = "SYSTEMADMIN"
    ADMIN = "ADMIN"
    FRONTDESK = "FRONTDESK"
    MICRO = "MICRO"
    CHEMISTRY = "CHEMISTRY"
    QA = "QA"
    CLIENT = "CLIENT"

    @classmethod
    def parse(cls, raw) -> "Role | None":
        if isinstance(raw, Role):
            return raw
        try:
            return cls(str(raw).strip().upper())
        except ValueError:
            return None


ADMIN_ROLES = frozenset({Role.ADMIN, Role.SYSTEMADMIN})

# Marker in an edit map meaning "every domain field"
WILDCARD = "*"

# Keys that are report metadata, never domain fields
RESERVED_KEYS = frozenset({
    "id", "status", "version", "formType", "form_type", "formNumber", "form_number",
    "reportNumber", "report_number", "clientCode", "client_code",
    "createdBy", "created_by", "updatedBy", "updated_by",
    "createdAt", "created_at", "updatedAt", "updated_at", "lockedAt", "locked_at",
    "corrections", "expectedVersion", "expected_version",
    "reason", "eSignPassword", "esign_password",
})


# ── Status enums ─────────────────────────────────────────────────────────────

class MicroStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED_BY_CLIENT = "SUBMITTED_BY_CLIENT"
    UNDER_CLIENT_PRELIMINARY_REVIEW = "UNDER_CLIENT_PRELIMINARY_REVIEW"
    CLIENT_NEEDS_PRELIMINARY_CORRECTION = "CLIENT_NEEDS_PRELIMINARY_CORRECTION"
    UNDER_CLIENT_PRELIMINARY_CORRECTION = "UNDER_CLIENT_PRELIMINARY_CORRECTION"
    UNDER_CLIENT_FINAL_CORRECTION = "UNDER_CLIENT_FINAL_CORRECTION"
    UNDER_CLIENT_FINAL_REVIEW = "UNDER_CLIENT_FINAL_REVIEW"
    PRELIMINARY_RESUBMISSION_BY_CLIENT = "PRELIMINARY_RESUBMISSION_BY_CLIENT"
    CLIENT_NEEDS_FINAL_CORRECTION = "CLIENT_NEEDS_FINAL_CORRECTION"
    FINAL_RESUBMISSION_BY_CLIENT = "FINAL_RESUBMISSION_BY_CLIENT"
    PRELIMINARY_APPROVED = "PRELIMINARY_APPROVED"
    RECEIVED_BY_FRONTDESK = "RECEIVED_BY_FRONTDESK"
    FRONTDESK_ON_HOLD = "FRONTDESK_ON_HOLD"
    FRONTDESK_NEEDS_CORRECTION = "FRONTDESK_NEEDS_CORRECTION"
    UNDER_PRELIMINARY_TESTING_REVIEW = "UNDER_PRELIMINARY_TESTING_REVIEW"
    PRELIMINARY_TESTING_ON_HOLD = "PRELIMINARY_TESTING_ON_HOLD"
    PRELIMINARY_TESTING_NEEDS_CORRECTION = "PRELIMINARY_TESTING_NEEDS_CORRECTION"
    UNDER_QA_PRELIMINARY_REVIEW = "UNDER_QA_PRELIMINARY_REVIEW"
    QA_NEEDS_PRELIMINARY_CORRECTION = "QA_NEEDS_PRELIMINARY_CORRECTION"
    UNDER_PRELIMINARY_RESUBMISSION_TESTING_REVIEW = "UNDER_PRELIMINARY_RESUBMISSION_TESTING_REVIEW"
    PRELIMINARY_RESUBMISSION_BY_TESTING = "PRELIMINARY_RESUBMISSION_BY_TESTING"
    UNDER_FINAL_TESTING_REVIEW = "UNDER_FINAL_TESTING_REVIEW"
    FINAL_TESTING_ON_HOLD = "FINAL_TESTING_ON_HOLD"
    FINAL_TESTING_NEEDS_CORRECTION = "FINAL_TESTING_NEEDS_CORRECTION"
    UNDER_FINAL_RESUBMISSION_TESTING_REVIEW = "UNDER_FINAL_RESUBMISSION_TESTING_REVIEW"
    FINAL_RESUBMISSION_BY_TESTING = "FINAL_RESUBMISSION_BY_TESTING"
    UNDER_QA_FINAL_REVIEW = "UNDER_QA_FINAL_REVIEW"
    QA_NEEDS_FINAL_CORRECTION = "QA_NEEDS_FINAL_CORRECTION"
    UNDER_FINAL_RESUBMISSION_QA_REVIEW = "UNDER_FINAL_RESUBMISSION_QA_REVIEW"
    UNDER_ADMIN_REVIEW = "UNDER_ADMIN_REVIEW"
    ADMIN_NEEDS_CORRECTION = "ADMIN_NEEDS_CORRECTION"
    ADMIN_REJECTED = "ADMIN_REJECTED"
    UNDER_FINAL_RESUBMISSION_ADMIN_REVIEW = "UNDER_FINAL_RESUBMISSION_ADMIN_REVIEW"
    FINAL_APPROVED = "FINAL_APPROVED"
    LOCKED = "LOCKED"


class ChemistryStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED_BY_CLIENT = "SUBMITTED_BY_CLIENT"
    UNDER_CLIENT_REVIEW = "UNDER_CLIENT_REVIEW"
    CLIENT_NEEDS_CORRECTION = "CLIENT_NEEDS_CORRECTION"
    UNDER_CLIENT_CORRECTION = "UNDER_CLIENT_CORRECTION"
    RESUBMISSION_BY_CLIENT = "RESUBMISSION_BY_CLIENT"
    RECEIVED_BY_FRONTDESK = "RECEIVED_BY_FRONTDESK"
    FRONTDESK_ON_HOLD = "FRONTDESK_ON_HOLD"
    FRONTDESK_NEEDS_CORRECTION = "FRONTDESK_NEEDS_CORRECTION"
    UNDER_TESTING_REVIEW = "UNDER_TESTING_REVIEW"
    TESTING_ON_HOLD = "TESTING_ON_HOLD"
    TESTING_NEEDS_CORRECTION = "TESTING_NEEDS_CORRECTION"
    UNDER_RESUBMISSION_TESTING_REVIEW = "UNDER_RESUBMISSION_TESTING_REVIEW"
    RESUBMISSION_BY_TESTING = "RESUBMISSION_BY_TESTING"
    UNDER_QA_REVIEW = "UNDER_QA_REVIEW"
    QA_NEEDS_CORRECTION = "QA_NEEDS_CORRECTION"
    UNDER_ADMIN_REVIEW = "UNDER_ADMIN_REVIEW"
    ADMIN_NEEDS_CORRECTION = "ADMIN_NEEDS_CORRECTION"
    ADMIN_REJECTED = "ADMIN_REJECTED"
    UNDER_RESUBMISSION_ADMIN_REVIEW = "UNDER_RESUBMISSION_ADMIN_REVIEW"
    APPROVED = "APPROVED"
    LOCKED = "LOCKED"


# ── Transition entry ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class StatusTransition:
    next: tuple = ()
    can_set: frozenset = frozenset()
    can_edit: frozenset = frozenset()


def _t(next=(), can_set=(), can_edit=()) -> StatusTransition:
    return StatusTransition(tuple(next), frozenset(can_set), frozenset(can_edit))


R = Role
M = MicroStatus
C = ChemistryStatus

_TESTING_STAFF = (R.MICRO, R.ADMIN, R.QA)
_LOCKERS = (R.CLIENT, R.ADMIN, R.SYSTEMADMIN)

MICRO_TRANSITIONS = {
    M.DRAFT: _t([M.SUBMITTED_BY_CLIENT], [R.CLIENT], [R.CLIENT]),
    M.SUBMITTED_BY_CLIENT: _t([M.UNDER_PRELIMINARY_TESTING_REVIEW], [R.MICRO]),
    M.UNDER_CLIENT_PRELIMINARY_REVIEW: _t(
        [M.CLIENT_NEEDS_PRELIMINARY_CORRECTION, M.PRELIMINARY_APPROVED], [R.CLIENT]),
    M.CLIENT_NEEDS_PRELIMINARY_CORRECTION: _t(
        [M.UNDER_PRELIMINARY_RESUBMISSION_TESTING_REVIEW], [R.MICRO]),
    M.UNDER_CLIENT_PRELIMINARY_CORRECTION: _t(
        [M.PRELIMINARY_RESUBMISSION_BY_CLIENT], [R.CLIENT], [R.CLIENT]),
    M.UNDER_CLIENT_FINAL_CORRECTION: _t(
        [M.FINAL_RESUBMISSION_BY_CLIENT], [R.CLIENT], [R.CLIENT]),
    M.UNDER_CLIENT_FINAL_REVIEW: _t(
        [M.FINAL_APPROVED, M.CLIENT_NEEDS_FINAL_CORRECTION], [R.CLIENT]),
    M.PRELIMINARY_RESUBMISSION_BY_CLIENT: _t(
        [M.UNDER_PRELIMINARY_TESTING_REVIEW], [R.MICRO]),
    M.CLIENT_NEEDS_FINAL_CORRECTION: _t(
        [M.UNDER_FINAL_RESUBMISSION_TESTING_REVIEW], [R.ADMIN, R.QA, R.MICRO]),
    M.FINAL_RESUBMISSION_BY_CLIENT: _t([M.UNDER_FINAL_TESTING_REVIEW], [R.CLIENT]),
    M.PRELIMINARY_APPROVED: _t([M.UNDER_FINAL_TESTING_REVIEW], [R.MICRO]),
    M.RECEIVED_BY_FRONTDESK: _t(
        [M.UNDER_CLIENT_FINAL_REVIEW, M.FRONTDESK_ON_HOLD], [R.FRONTDESK]),
    M.FRONTDESK_ON_HOLD: _t([M.RECEIVED_BY_FRONTDESK], [R.FRONTDESK]),
    M.FRONTDESK_NEEDS_CORRECTION: _t(
        [M.SUBMITTED_BY_CLIENT], [R.FRONTDESK, R.ADMIN, R.QA]),
    M.UNDER_PRELIMINARY_TESTING_REVIEW: _t(
        [M.PRELIMINARY_TESTING_ON_HOLD, M.PRELIMINARY_TESTING_NEEDS_CORRECTION,
         M.UNDER_QA_PRELIMINARY_REVIEW],
        [R.MICRO], _TESTING_STAFF),
    M.PRELIMINARY_TESTING_ON_HOLD: _t([M.UNDER_PRELIMINARY_TESTING_REVIEW], [R.MICRO]),
    M.PRELIMINARY_TESTING_NEEDS_CORRECTION: _t(
        [M.UNDER_CLIENT_PRELIMINARY_CORRECTION], [R.CLIENT]),
    M.UNDER_QA_PRELIMINARY_REVIEW: _t(
        [M.QA_NEEDS_PRELIMINARY_CORRECTION, M.UNDER_CLIENT_PRELIMINARY_REVIEW],
        [R.QA], [R.QA]),
    M.QA_NEEDS_PRELIMINARY_CORRECTION: _t([M.UNDER_PRELIMINARY_TESTING_REVIEW], [R.QA]),
    M.UNDER_PRELIMINARY_RESUBMISSION_TESTING_REVIEW: _t(
        [M.UNDER_QA_PRELIMINARY_REVIEW], [R.MICRO], _TESTING_STAFF),
    M.PRELIMINARY_RESUBMISSION_BY_TESTING: _t([M.UNDER_QA_PRELIMINARY_REVIEW], [R.QA]),
    M.UNDER_FINAL_TESTING_REVIEW: _t(
        [M.FINAL_TESTING_ON_HOLD, M.FINAL_TESTING_NEEDS_CORRECTION, M.UNDER_QA_FINAL_REVIEW],
        [R.MICRO], [R.MICRO]),
    M.FINAL_TESTING_ON_HOLD: _t(
        [M.FINAL_TESTING_NEEDS_CORRECTION, M.UNDER_FINAL_TESTING_REVIEW], [R.MICRO]),
    M.FINAL_TESTING_NEEDS_CORRECTION: _t(
        [M.UNDER_CLIENT_FINAL_CORRECTION], _TESTING_STAFF),
    M.UNDER_FINAL_RESUBMISSION_TESTING_REVIEW: _t(
        [M.UNDER_FINAL_RESUBMISSION_QA_REVIEW], _TESTING_STAFF, _TESTING_STAFF),
    M.FINAL_RESUBMISSION_BY_TESTING: _t([M.UNDER_QA_FINAL_REVIEW], _TESTING_STAFF),
    M.UNDER_QA_FINAL_REVIEW: _t(
        [M.QA_NEEDS_FINAL_CORRECTION, M.RECEIVED_BY_FRONTDESK], [R.MICRO, R.QA], [R.QA]),
    M.QA_NEEDS_FINAL_CORRECTION: _t([M.UNDER_FINAL_TESTING_REVIEW], [R.QA]),
    M.UNDER_FINAL_RESUBMISSION_QA_REVIEW: _t(
        [M.RECEIVED_BY_FRONTDESK], [R.QA], [R.ADMIN, R.QA]),
    M.UNDER_ADMIN_REVIEW: _t(
        [M.ADMIN_NEEDS_CORRECTION, M.ADMIN_REJECTED, M.RECEIVED_BY_FRONTDESK],
        [R.ADMIN, R.SYSTEMADMIN], [R.ADMIN]),
    M.ADMIN_NEEDS_CORRECTION: _t(
        [M.UNDER_QA_FINAL_REVIEW], [R.ADMIN, R.SYSTEMADMIN], [R.ADMIN]),
    M.ADMIN_REJECTED: _t([M.UNDER_QA_FINAL_REVIEW], [R.ADMIN, R.SYSTEMADMIN]),
    M.UNDER_FINAL_RESUBMISSION_ADMIN_REVIEW: _t(
        [M.RECEIVED_BY_FRONTDESK], [R.ADMIN], [R.ADMIN]),
    M.FINAL_APPROVED: _t([M.LOCKED], _LOCKERS),
    M.LOCKED: _t(),
}

CHEMISTRY_TRANSITIONS = {
    C.DRAFT: _t([C.SUBMITTED_BY_CLIENT], [R.CLIENT], [R.CLIENT]),
    C.SUBMITTED_BY_CLIENT: _t([C.UNDER_TESTING_REVIEW], [R.CHEMISTRY]),
    C.UNDER_CLIENT_REVIEW: _t([C.CLIENT_NEEDS_CORRECTION, C.APPROVED], [R.CLIENT]),
    C.CLIENT_NEEDS_CORRECTION: _t([C.UNDER_RESUBMISSION_TESTING_REVIEW], [R.CHEMISTRY]),
    C.UNDER_CLIENT_CORRECTION: _t([C.RESUBMISSION_BY_CLIENT], [R.CLIENT], [R.CLIENT]),
    C.RESUBMISSION_BY_CLIENT: _t([C.UNDER_TESTING_REVIEW], [R.CHEMISTRY]),
    C.RECEIVED_BY_FRONTDESK: _t(
        [C.UNDER_CLIENT_REVIEW, C.FRONTDESK_ON_HOLD], [R.FRONTDESK]),
    C.FRONTDESK_ON_HOLD: _t([C.RECEIVED_BY_FRONTDESK], [R.FRONTDESK]),
    C.FRONTDESK_NEEDS_CORRECTION: _t([C.SUBMITTED_BY_CLIENT], [R.FRONTDESK, R.ADMIN]),
    C.UNDER_TESTING_REVIEW: _t(
        [C.TESTING_ON_HOLD, C.TESTING_NEEDS_CORRECTION, C.UNDER_ADMIN_REVIEW],
        [R.CHEMISTRY], [R.CHEMISTRY, R.ADMIN]),
    C.TESTING_ON_HOLD: _t([C.UNDER_TESTING_REVIEW], [R.CHEMISTRY]),
    C.TESTING_NEEDS_CORRECTION: _t([C.UNDER_CLIENT_CORRECTION], [R.CLIENT]),
    C.UNDER_RESUBMISSION_TESTING_REVIEW: _t(
        [C.RESUBMISSION_BY_TESTING], [R.CHEMISTRY], [R.CHEMISTRY, R.ADMIN]),
    C.RESUBMISSION_BY_TESTING: _t([C.UNDER_CLIENT_REVIEW], [R.CLIENT]),
    C.UNDER_QA_REVIEW: _t(
        [C.QA_NEEDS_CORRECTION, C.UNDER_ADMIN_REVIEW], [R.CHEMISTRY], [R.QA]),
    C.QA_NEEDS_CORRECTION: _t([C.UNDER_TESTING_REVIEW], [R.QA]),
    C.UNDER_ADMIN_REVIEW: _t(
        [C.ADMIN_NEEDS_CORRECTION, C.ADMIN_REJECTED, C.RECEIVED_BY_FRONTDESK],
        [R.ADMIN, R.SYSTEMADMIN], [R.ADMIN]),
    C.ADMIN_NEEDS_CORRECTION: _t(
        [C.UNDER_QA_REVIEW], [R.ADMIN, R.SYSTEMADMIN], [R.ADMIN]),
    C.ADMIN_REJECTED: _t([C.UNDER_QA_REVIEW], [R.ADMIN, R.SYSTEMADMIN]),
    C.UNDER_RESUBMISSION_ADMIN_REVIEW: _t([C.RECEIVED_BY_FRONTDESK], [R.ADMIN], [R.ADMIN]),
    C.APPROVED: _t([C.LOCKED], _LOCKERS),
    C.LOCKED: _t(),
}


# ── Edit maps (role → base field names) ──────────────────────────────────────

_MICRO_INTAKE_FIELDS = (
    "client", "dateSent", "typeOfTest", "sampleType", "formulaNo", "idNo",
    "description", "lotNo", "manufactureDate", "samplingDate",
)
_MICRO_TESTING_FIELDS = (
    "testSopNo", "tbc_dilution", "tbc_gram", "tbc_result",
    "tmy_dilution", "tmy_gram", "tmy_result", "pathogens",
    "dateTested", "preliminaryResults", "preliminaryResultsDate", "comments",
)

MICRO_EDIT_MAP = {
    R.SYSTEMADMIN: frozenset(),
    R.ADMIN: frozenset({WILDCARD}),
    R.FRONTDESK: frozenset(_MICRO_INTAKE_FIELDS),
    R.MICRO: frozenset(_MICRO_TESTING_FIELDS),
    R.CHEMISTRY: frozenset(_MICRO_TESTING_FIELDS),
    R.QA: frozenset(_MICRO_TESTING_FIELDS + ("dateCompleted",)),
    R.CLIENT: frozenset(_MICRO_INTAKE_FIELDS + ("tbc_spec", "tmy_spec", "pathogens")),
}

CHEMISTRY_EDIT_MAP = {
    R.SYSTEMADMIN: frozenset(),
    R.ADMIN: frozenset({WILDCARD}),
    R.FRONTDESK: frozenset(),
    R.MICRO: frozenset(),
    R.CHEMISTRY: frozenset({
        "dateReceived", "sop", "results", "dateTested", "initial", "comments",
        "testedBy", "testedDate", "actives", "coaRows",
    }),
    R.QA: frozenset({"dateCompleted", "reviewedBy", "reviewedDate"}),
    R.CLIENT: frozenset({
        "client", "dateSent", "sampleDescription", "testTypes", "sampleCollected",
        "lotBatchNo", "manufactureDate", "formulaId", "sampleSize", "numberOfActives",
        "sampleTypes", "comments", "actives", "formulaContent", "coaRows",
    }),
}

_REVIEW_CRITICAL = ("dateCompleted", "reviewedBy", "reviewedDate", "testedBy", "testedDate")

# Domain fields stored as ISO dates
DATE_FIELDS = frozenset({
    "dateSent", "manufactureDate", "samplingDate", "dateTested", "preliminaryResultsDate",
    "dateCompleted", "reviewedDate", "testedDate", "dateReceived",
})


# ── Workflow definition ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class WorkflowDefinition:
    """Everything the engine needs to drive one report family."""

    name: str
    status_enum: type
    transitions: dict
    edit_map: dict
    critical_fields: frozenset
    esign_targets: frozenset
    testing_start: Enum
    department: str
    override_esign_exempt: frozenset = field(default_factory=frozenset)

    def __post_init__(self):
        _check_workflow(self)

    @property
    def initial_status(self) -> Enum:
        return self.status_enum.DRAFT

    @property
    def lock_status(self) -> Enum:
        return self.status_enum.LOCKED

    @property
    def statuses(self) -> list:
        return list(self.status_enum)

    def parse_status(self, raw) -> Enum:
        """Return the enum member for ``raw`` or raise ValidationError."""
        if isinstance(raw, self.status_enum):
            return raw
        try:
            return self.status_enum(str(raw).strip())
        except (ValueError, TypeError):
            raise ValidationError(
                f"Unknown {self.name} status: {raw!r}",
                details={"targetStatus": raw},
            ) from None

    def entry(self, status) -> StatusTransition:
        return self.transitions[self.parse_status(status)]

    def can_initiate(self, role: Role, from_status, to_status) -> bool:
        rule = self.entry(from_status)
        return role in rule.can_set and self.parse_status(to_status) in rule.next

    def allowed_targets(self, role: Role, from_status) -> list:
        rule = self.entry(from_status)
        return list(rule.next) if role in rule.can_set else []

    def can_edit(self, role: Role, status) -> bool:
        return role in self.entry(status).can_edit

    def is_correction_status(self, status) -> bool:
        name = self.parse_status(status).value
        return "NEEDS_" in name and name.endswith("CORRECTION")

    def correction_statuses(self) -> list:
        return [s for s in self.status_enum if self.is_correction_status(s)]

    def requires_esign(self, role: Role, target) -> bool:
        return self.parse_status(target) in self.esign_targets

    def is_terminal(self, status) -> bool:
        return not self.entry(status).next


def _check_workflow(wf: WorkflowDefinition) -> None:
    missing = [s.value for s in wf.status_enum if s not in wf.transitions]
    if missing:
        raise WorkflowConfigurationError(
            f"{wf.name} transition table has no entry for: {', '.join(missing)}"
        )
    for status, rule in wf.transitions.items():
        if not isinstance(status, wf.status_enum):
            raise WorkflowConfigurationError(f"{wf.name}: {status!r} is not a {wf.status_enum.__name__}")
        for target in rule.next:
            if not isinstance(target, wf.status_enum):
                raise WorkflowConfigurationError(
                    f"{wf.name}: {status.value} → {target!r} is not a {wf.status_enum.__name__}"
                )
        for role in rule.can_set | rule.can_edit:
            if not isinstance(role, Role):
                raise WorkflowConfigurationError(f"{wf.name}: unknown role {role!r} on {status.value}")
    unknown_roles = [r for r in wf.edit_map if not isinstance(r, Role)]
    if unknown_roles or set(wf.edit_map) != set(Role):
        raise WorkflowConfigurationError(f"{wf.name}: edit map must list every role exactly once")
    for status in (*wf.esign_targets, wf.testing_start, *wf.override_esign_exempt):
        if not isinstance(status, wf.status_enum):
            raise WorkflowConfigurationError(f"{wf.name}: {status!r} is not a {wf.status_enum.__name__}")
    if wf.status_enum.DRAFT not in wf.transitions or wf.status_enum.LOCKED not in wf.transitions:
        raise WorkflowConfigurationError(f"{wf.name}: DRAFT and LOCKED are required")


MICRO_WORKFLOW = WorkflowDefinition(
    name="micro",
    status_enum=MicroStatus,
    transitions=MICRO_TRANSITIONS,
    edit_map=MICRO_EDIT_MAP,
    critical_fields=frozenset(_REVIEW_CRITICAL + ("tbc_result", "tmy_result")),
    esign_targets=frozenset({M.UNDER_CLIENT_FINAL_REVIEW, M.LOCKED}),
    testing_start=M.UNDER_PRELIMINARY_TESTING_REVIEW,
    department="OM",
    override_esign_exempt=frozenset({M.UNDER_FINAL_TESTING_REVIEW}),
)

CHEMISTRY_WORKFLOW = WorkflowDefinition(
    name="chemistry",
    status_enum=ChemistryStatus,
    transitions=CHEMISTRY_TRANSITIONS,
    edit_map=CHEMISTRY_EDIT_MAP,
    critical_fields=frozenset(_REVIEW_CRITICAL),
    esign_targets=frozenset({C.UNDER_CLIENT_REVIEW, C.LOCKED}),
    testing_start=C.UNDER_TESTING_REVIEW,
    department="BC",
)

FORM_TYPES = {
    "MICRO_MIX": MICRO_WORKFLOW,
    "MICRO_MIX_WATER": MICRO_WORKFLOW,
    "CHEMISTRY_MIX": CHEMISTRY_WORKFLOW,
    "COA": CHEMISTRY_WORKFLOW,
}


def workflow_for(form_type: str) -> WorkflowDefinition:
    """Return the workflow bound to ``form_type`` or raise ValidationError."""
    wf = FORM_TYPES.get((form_type or "").strip().upper())
    if wf is None:
        raise ValidationError(
            f"Unknown formType: {form_type!r}",
            details={"formType": sorted(FORM_TYPES)},
        )
    return wf
