"""
Field authorization matrix — which fields a role may write in a status.

A write of field F by role R on a report in status S is authorized iff

    R ∈ transitions[S].can_edit   and   base(F) ∈ edit_map[R]

where ``edit_map[R]`` may be the wildcard (every domain field).  A client
working on its own DRAFT may write every domain field.  Reserved metadata
keys (status, version, numbers, audit columns) are never writable here.

Unauthorized keys are dropped from a patch, not rejected: a form that
posts its whole state back only persists the part the caller owns.

Usage:
    from labflow.services.field_authorization import filter_patch

    result = filter_patch(wf, Role.MICRO, status, {"tbc_result": "<10", "client": "X"})
    result.applied   → {"tbc_result": "<10"}
    result.dropped   → ["client"]
"""

from dataclasses import dataclass, field

from labflow.core.field_path import FieldPath
from labflow.models.workflow import RESERVED_KEYS, WILDCARD, Role, WorkflowDefinition


@dataclass
class FieldPatch:
    applied: dict = field(default_factory=dict)
    dropped: list = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.applied


def editable_fields(wf: WorkflowDefinition, role: Role, status) -> frozenset:
    """Base field names ``role`` may write in ``status``; may contain WILDCARD."""
    status = wf.parse_status(status)
    if not wf.can_edit(role, status):
        return frozenset()
    if role == Role.CLIENT and status == wf.initial_status:
        return frozenset({WILDCARD})
    return wf.edit_map.get(role, frozenset())


def can_edit_field(wf: WorkflowDefinition, role: Role, status, field_key) -> bool:
    base = FieldPath.parse(field_key).base if not isinstance(field_key, FieldPath) else field_key.base
    if base in RESERVED_KEYS:
        return False
    allowed = editable_fields(wf, role, status)
    return WILDCARD in allowed or base in allowed


def filter_patch(wf: WorkflowDefinition, role: Role, status, patch: dict) -> FieldPatch:
    """Split ``patch`` into the authorized subset and the dropped keys."""
    allowed = editable_fields(wf, role, status)
    result = FieldPatch()
    for key, value in (patch or {}).items():
        if key in RESERVED_KEYS:
            continue
        if WILDCARD in allowed or key in allowed:
            result.applied[key] = value
        else:
            result.dropped.append(key)
    return result


def critical_fields_touched(wf: WorkflowDefinition, keys) -> list:
    return sorted(k for k in keys if k in wf.critical_fields)
