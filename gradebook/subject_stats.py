"""
Per-subject statistics and positions within a class-term.
"""
from dataclasses import dataclass
from decimal import Decimal

from .ranking import competition_rank, gradable_records


@dataclass(frozen=True)
class SubjectStatistics:
    total_students: int
    lowest: Decimal
    highest: Decimal
    average: Decimal


EMPTY_STATISTICS = SubjectStatistics(
    total_students=0,
    lowest=Decimal('0'),
    highest=Decimal('0'),
    average=Decimal('0'),
)


def compute_subject_statistics(records, subject_id):
    """
    Count, lowest, highest and mean total for one subject.

    Absent and exempt records are left out. With no gradable records every
    field is zero.
    """
    totals = [r.total for r in gradable_records(records, subject_id)]
    if not totals:
        return EMPTY_STATISTICS

    return SubjectStatistics(
        total_students=len(totals),
        lowest=min(totals),
        highest=max(totals),
        average=sum(totals, Decimal('0')) / len(totals),
    )


def rank_subject(records, subject_id):
    """Competition-ranked entries for every gradable record of a subject."""
    return competition_rank(
        gradable_records(records, subject_id),
        score_of=lambda r: r.total,
        key_of=lambda r: r.student_id,
    )


def compute_subject_positions(records, subject_id, student_id):
    """Position of one student in a subject, or None without a gradable record."""
    for entry in rank_subject(records, subject_id):
        if entry.student_id == student_id:
            return entry.position
    return None
