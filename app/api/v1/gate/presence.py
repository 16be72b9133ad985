"""
Who is outside the hostel right now, derived from the gate log alone.

Per student the latest authoritative entry (VALID or MANUAL, ordered by scanned_at
then id) decides. A VALID exit counts until the leave's to_date has passed, after
which the student is reported as overdue. A MANUAL exit counts only while no later
entry of any status exists for that student.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Mapping, Optional
from uuid import UUID

from app.core.enums import GateAction, ScanStatus

AUTHORITATIVE_STATUSES = (ScanStatus.VALID.value, ScanStatus.MANUAL.value)


@dataclass(frozen=True)
class GateEntryRecord:
    id: int
    student_id: UUID
    leave_application_id: Optional[UUID]
    action_type: str
    validation_status: str
    scanned_at: datetime

    @property
    def order_key(self):
        return (self.scanned_at, self.id)


@dataclass(frozen=True)
class OutsideStudent:
    student_id: UUID
    leave_application_id: Optional[UUID]
    exit_log_id: int
    exited_at: datetime
    to_date: Optional[date]
    manual: bool


@dataclass
class PresenceSnapshot:
    outside: List[OutsideStudent] = field(default_factory=list)
    overdue: List[OutsideStudent] = field(default_factory=list)


def _latest_authoritative(entries: List[GateEntryRecord]) -> Optional[int]:
    for index in range(len(entries) - 1, -1, -1):
        if entries[index].validation_status in AUTHORITATIVE_STATUSES:
            return index
    return None


def project_presence(
    entries: Iterable[GateEntryRecord],
    to_dates: Mapping[UUID, date],
    today: date,
) -> PresenceSnapshot:
    """
    entries: gate log rows with a resolved student (any order).
    to_dates: current to_date per leave application id.
    """
    by_student: Dict[UUID, List[GateEntryRecord]] = defaultdict(list)
    for entry in entries:
        by_student[entry.student_id].append(entry)

    snapshot = PresenceSnapshot()
    for student_id, history in by_student.items():
        history.sort(key=lambda e: e.order_key)
        index = _latest_authoritative(history)
        if index is None:
            continue
        last = history[index]
        if last.action_type != GateAction.EXIT.value:
            continue

        if last.validation_status == ScanStatus.MANUAL.value:
            if index != len(history) - 1:
                continue
            snapshot.outside.append(
                OutsideStudent(student_id, last.leave_application_id, last.id, last.scanned_at, None, True)
            )
            continue

        to_date = to_dates.get(last.leave_application_id)
        if to_date is None:
            continue
        record = OutsideStudent(student_id, last.leave_application_id, last.id, last.scanned_at, to_date, False)
        if to_date < today:
            snapshot.overdue.append(record)
        else:
            snapshot.outside.append(record)

    snapshot.outside.sort(key=lambda r: (r.exited_at, r.exit_log_id), reverse=True)
    snapshot.overdue.sort(key=lambda r: (r.exited_at, r.exit_log_id), reverse=True)
    return snapshot
