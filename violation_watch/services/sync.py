from collections import OrderedDict
from datetime import date
from typing import AbstractSet, Dict, Iterable, List, Optional, Sequence
import structlog
from violation_watch.models.records import CaseStatus, SyncResult, ViolationRecord

logger = structlog.get_logger()

def filter_new(
    upstream_records: Sequence[ViolationRecord],
    existing_ids: AbstractSet[int],
    existing_casefile_numbers: AbstractSet[str],
    latest_known_date: Optional[date],
) -> SyncResult:
    """Diff an upstream batch against what the store already holds.

    Pass ``latest_known_date=None`` for a full sync; the date watermark is then
    not applied.
    """
    seen = set()
    unseen: List[ViolationRecord] = []
    for record in upstream_records:
        if record.id in existing_ids or record.id in seen:
            continue
        seen.add(record.id)
        unseen.append(record)

    if latest_known_date is not None:
        survivors = [
            r for r in unseen
            if r.investigation_date is not None and r.investigation_date > latest_known_date
        ]
    else:
        survivors = unseen

    new_casefiles: List[ViolationRecord] = []
    updates: List[ViolationRecord] = []
    for record in survivors:
        if record.casefile_number and record.casefile_number in existing_casefile_numbers:
            updates.append(record)
        else:
            new_casefiles.append(record)

    logger.info(
        "sync_diff_computed",
        upstream=len(upstream_records),
        unseen=len(unseen),
        new_records=len(survivors),
        new_casefiles=len(new_casefiles),
        updates=len(updates),
        watermark=latest_known_date.isoformat() if latest_known_date else None,
    )
    return SyncResult(
        new_records=survivors,
        new_casefiles=new_casefiles,
        new_records_for_existing_cases=updates,
    )

def _recency_key(record: ViolationRecord):
    # undated records sort before every dated one; on a date tie the more terminal status wins
    return (
        record.investigation_date is not None,
        record.investigation_date or date.min,
        record.case_status.terminal_rank,
    )

def current_case_status(records: Iterable[ViolationRecord]) -> CaseStatus:
    """Status of a case: the latest record wins, ties go to CLOSED, then READY TO CLOSE."""
    records = list(records)
    if not records:
        return CaseStatus.UNKNOWN
    return max(records, key=_recency_key).case_status

def group_by_case(records: Iterable[ViolationRecord]) -> Dict[str, List[ViolationRecord]]:
    cases: Dict[str, List[ViolationRecord]] = OrderedDict()
    for record in records:
        if not record.casefile_number:
            continue
        cases.setdefault(record.casefile_number, []).append(record)
    return cases

def open_case_counts(records: Iterable[ViolationRecord]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for case_records in group_by_case(records).values():
        status = current_case_status(case_records)
        if status is CaseStatus.CLOSED:
            continue
        counts[status.value] = counts.get(status.value, 0) + 1
    return counts
