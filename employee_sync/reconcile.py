"""
Candidate selection and reconciliation.

Decides which provider users need an employee number, fetches the value from
the directory and writes it back, sorting every candidate into exactly one of
updated / not found / failed.
"""

import fnmatch
import logging
from typing import Iterable, List, Optional

from employee_sync.models import (
    ACTIVE_STATUS,
    IdentityRecord,
    Outcome,
    OutcomeKind,
    ReconcileResult,
    REASON_NO_MATCH,
    REASON_EMPTY_VALUE,
    REASON_LOOKUP_ERROR,
    REASON_UPDATE_ERROR,
)
from employee_sync.logging_setup import security_logger

logger = logging.getLogger(__name__)


def email_is_excluded(email: str, exclude_pattern: str) -> bool:
    """Case-insensitive glob match of an email against the exclusion pattern."""
    if not exclude_pattern:
        return False
    return fnmatch.fnmatchcase((email or '').lower(), exclude_pattern.lower())


def is_candidate(record: IdentityRecord, exclude_pattern: str) -> bool:
    """
    Return True if the record should be reconciled.

    A candidate is ACTIVE, has an email outside the exclusion pattern and has
    no employee number yet.
    """
    if record.status != ACTIVE_STATUS:
        return False
    if email_is_excluded(record.email, exclude_pattern):
        return False
    return not (record.employee_number or '').strip()


def select_candidates(records: Iterable[IdentityRecord], exclude_pattern: str) -> List[IdentityRecord]:
    """Drain the record sequence and keep the candidates."""
    candidates = []
    seen = 0
    for record in records:
        seen += 1
        if is_candidate(record, exclude_pattern):
            candidates.append(record)
    logger.info(f"Scanned {seen} users, discovered {len(candidates)} candidates missing an employee number")
    return candidates


class Reconciler:
    """
    Per-candidate lookup and write-back loop.

    Lookup and update errors are contained per candidate: they are logged,
    counted as failed, and the loop moves on.
    """

    def __init__(self, directory, provider, source_attribute: str = 'employeeID',
                 search_base: Optional[str] = None, dry_run: bool = False):
        """
        Args:
            directory: Object with find_attribute_by_display_name(display_name, attribute, search_base)
            provider: Object with update_employee_number(user_id, value)
            source_attribute: Directory attribute to copy
            search_base: Directory search root (None uses the directory client's default)
            dry_run: Skip the update call and report would-be updates as updated
        """
        self.directory = directory
        self.provider = provider
        self.source_attribute = source_attribute
        self.search_base = search_base
        self.dry_run = dry_run

    def reconcile(self, candidates: Iterable[IdentityRecord]) -> ReconcileResult:
        result = ReconcileResult()
        for record in candidates:
            result.candidates += 1
            result.add(self.reconcile_one(record))
        return result

    def reconcile_one(self, record: IdentityRecord) -> Outcome:
        """Classify a single candidate, making at most one update call."""
        try:
            value = self.directory.find_attribute_by_display_name(
                record.display_name, self.source_attribute, self.search_base
            )
        except Exception as e:
            logger.warning(f"Directory lookup failed for {record.label} "
                           f"(displayName={record.display_name!r}): {e}")
            return Outcome(record, OutcomeKind.FAILED, reason=REASON_LOOKUP_ERROR, error=str(e))

        if value is None:
            logger.info(f"No directory match for {record.label} (displayName={record.display_name!r})")
            return Outcome(record, OutcomeKind.NOT_FOUND, reason=REASON_NO_MATCH)

        value = str(value).strip()
        if not value:
            logger.info(f"Directory entry for {record.label} has an empty {self.source_attribute}")
            return Outcome(record, OutcomeKind.NOT_FOUND, reason=REASON_EMPTY_VALUE)

        if self.dry_run:
            logger.info(f"[dry-run] Would set employeeNumber={value} on {record.label}")
            return Outcome(record, OutcomeKind.UPDATED, value=value)

        try:
            self.provider.update_employee_number(record.id, value)
        except Exception as e:
            security_logger.log_profile_update(record.id, record.label, 'employeeNumber', False)
            logger.warning(f"Failed to update employeeNumber for {record.label} "
                           f"(email={record.email}): {e}")
            return Outcome(record, OutcomeKind.FAILED, value=value,
                           reason=REASON_UPDATE_ERROR, error=str(e))

        security_logger.log_profile_update(record.id, record.label, 'employeeNumber', True)
        logger.info(f"Set employeeNumber={value} on {record.label}")
        return Outcome(record, OutcomeKind.UPDATED, value=value)


def format_summary(candidates: int, not_found: int, failed: int) -> str:
    """Render the end-of-run report from already classified counts."""
    updated = candidates - not_found - failed
    return "\n".join([
        f"Candidates discovered: {candidates}",
        f"Updated: {updated}",
        f"Not found in directory: {not_found}",
        f"Update failed: {failed}",
    ])
