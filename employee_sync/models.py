"""
Data models shared by the lister, the reconciler and the summary.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional

ACTIVE_STATUS = 'ACTIVE'


@dataclass(frozen=True)
class IdentityRecord:
    """Snapshot of one identity provider user."""
    id: str
    status: str = ""
    email: str = ""
    display_name: str = ""
    employee_number: Optional[str] = None
    login: str = ""

    @classmethod
    def from_api(cls, user: Dict[str, Any]) -> 'IdentityRecord':
        """Build a record from a provider user object (profile fields are nested)."""
        profile = user.get('profile') or {}
        employee_number = profile.get('employeeNumber')
        return cls(
            id=str(user.get('id', '')),
            status=str(user.get('status') or ''),
            email=str(profile.get('email') or ''),
            display_name=str(profile.get('displayName') or ''),
            employee_number=str(employee_number) if employee_number is not None else None,
            login=str(profile.get('login') or '')
        )

    @property
    def label(self) -> str:
        """Identifier used in log lines."""
        return self.login or self.email or self.id


class OutcomeKind(Enum):
    """Classification of a reconciled candidate."""
    UPDATED = "updated"
    NOT_FOUND = "not_found"
    FAILED = "failed"


# Reason codes
REASON_NO_MATCH = "no_match"
REASON_EMPTY_VALUE = "empty_value"
REASON_LOOKUP_ERROR = "lookup_error"
REASON_UPDATE_ERROR = "update_error"


@dataclass
class Outcome:
    """Result for a single candidate."""
    record: IdentityRecord
    kind: OutcomeKind
    value: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ReconcileResult:
    """Outcome buckets for one run. The three buckets never overlap."""
    candidates: int = 0
    updated: List[Outcome] = field(default_factory=list)
    not_found: List[Outcome] = field(default_factory=list)
    failed: List[Outcome] = field(default_factory=list)

    def add(self, outcome: Outcome) -> None:
        if outcome.kind is OutcomeKind.UPDATED:
            self.updated.append(outcome)
        elif outcome.kind is OutcomeKind.NOT_FOUND:
            self.not_found.append(outcome)
        else:
            self.failed.append(outcome)

    @property
    def classified(self) -> int:
        return len(self.updated) + len(self.not_found) + len(self.failed)
