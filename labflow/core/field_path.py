"""
FieldPath — hierarchical key into a report's fields.

Correction items address either a whole field (``"tbc_result"``) or a cell
inside a row-based table field (``"coaRows:ROW-7:result"``).  The string
form is what clients send and what gets persisted; ``FieldPath`` is the
parsed value used by the service layer.

    path = FieldPath.parse("coaRows:ROW-7:result")
    path.base            → "coaRows"       (what the edit map authorizes)
    path.segments        → ("coaRows", "ROW-7", "result")
    str(path)            → "coaRows:ROW-7:result"
    path.resolve(fields) → the current cell value, or None

Row lookup: a segment applied to a list selects the row whose ``key``
(falling back to ``id`` then ``name``) equals the segment; a purely
numeric segment that matches no row is used as a list index.
"""

from dataclasses import dataclass

from labflow.core.exceptions import ValidationError

SEPARATOR = ":"
_ROW_KEYS = ("key", "id", "name")


@dataclass(frozen=True)
class FieldPath:
    segments: tuple[str, ...]

    def __post_init__(self):
        if not self.segments:
            raise ValidationError("Field key must not be empty", details={"fieldKey": "empty"})
        for seg in self.segments:
            if not isinstance(seg, str) or not seg.strip():
                raise ValidationError(
                    "Field key contains an empty segment",
                    details={"fieldKey": SEPARATOR.join(map(str, self.segments))},
                )

    @classmethod
    def parse(cls, raw) -> "FieldPath":
        if isinstance(raw, FieldPath):
            return raw
        if not isinstance(raw, str) or not raw.strip():
            raise ValidationError("Field key is required", details={"fieldKey": "required"})
        return cls(tuple(raw.strip().split(SEPARATOR)))

    @classmethod
    def of(cls, *segments: str) -> "FieldPath":
        return cls(tuple(segments))

    def __str__(self) -> str:
        return SEPARATOR.join(self.segments)

    @property
    def base(self) -> str:
        return self.segments[0]

    @property
    def depth(self) -> int:
        return len(self.segments)

    @property
    def parent(self) -> "FieldPath | None":
        if len(self.segments) == 1:
            return None
        return FieldPath(self.segments[:-1])

    def child(self, segment: str) -> "FieldPath":
        return FieldPath(self.segments + (segment,))

    def is_prefix_of(self, other: "FieldPath") -> bool:
        """True when ``other`` equals this path or lies underneath it."""
        return other.segments[: len(self.segments)] == self.segments

    def startswith(self, prefix: "FieldPath | str") -> bool:
        return FieldPath.parse(prefix).is_prefix_of(self)

    def resolve(self, fields: dict | None):
        """Walk ``fields`` along this path; unresolvable paths return None."""
        node = fields
        for seg in self.segments:
            if isinstance(node, dict):
                if seg not in node:
                    return None
                node = node[seg]
            elif isinstance(node, list):
                node = _select_row(node, seg)
            else:
                return None
            if node is None:
                return None
        return node


def _select_row(rows: list, segment: str):
    for key in _ROW_KEYS:
        for row in rows:
            if isinstance(row, dict) and key in row and str(row[key]) == segment:
                return row
    if segment.isdigit():
        idx = int(segment)
        if idx < len(rows):
            return rows[idx]
    return None
