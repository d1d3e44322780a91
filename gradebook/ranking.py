"""
Score records and competition ranking shared by subject and class positions.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from .grading import to_decimal


@dataclass(frozen=True)
class ScoreRecord:
    """One assessment row: a student's CA and exam components for a subject in a term."""
    student_id: Any
    subject_id: Any
    ca1: Optional[Decimal] = None
    ca2: Optional[Decimal] = None
    ca3: Optional[Decimal] = None
    exam: Optional[Decimal] = None
    is_absent: bool = False
    is_exempt: bool = False

    def __post_init__(self):
        for field in ('ca1', 'ca2', 'ca3', 'exam'):
            object.__setattr__(self, field, to_decimal(getattr(self, field)))

    @property
    def is_gradable(self):
        return not (self.is_absent or self.is_exempt)

    @property
    def total(self):
        """Sum of the entered components, or None when absent/exempt."""
        if not self.is_gradable:
            return None
        return sum(
            (c for c in (self.ca1, self.ca2, self.ca3, self.exam) if c is not None),
            Decimal('0'),
        )

    @property
    def has_all_components(self):
        return None not in (self.ca1, self.ca2, self.ca3, self.exam)


@dataclass(frozen=True)
class RankedEntry:
    student_id: Any
    score: Decimal
    position: int


def competition_rank(items, score_of, key_of):
    """
    Rank items by score, highest first, with shared positions for ties.

    Equal scores share a position and the next lower score takes its
    1-based place in the sorted list, so totals 90, 80, 80, 70 rank 1, 2, 2, 4.

    Args:
        items: iterable of anything
        score_of: callable returning the item's score
        key_of: callable returning the id stored on the RankedEntry

    Returns:
        list of RankedEntry in rank order
    """
    scored = [(key_of(item), to_decimal(score_of(item))) for item in items]
    scored.sort(key=lambda pair: pair[1], reverse=True)

    ranked = []
    position = 0
    last_score = None
    for i, (key, score) in enumerate(scored, 1):
        if score != last_score:
            position = i
        ranked.append(RankedEntry(student_id=key, score=score, position=position))
        last_score = score
    return ranked


def gradable_records(records, subject_id=None):
    """Records that count towards totals, optionally limited to one subject."""
    return [
        r for r in records
        if r.is_gradable and (subject_id is None or r.subject_id == subject_id)
    ]
