"""
Student aggregates, per-subject report lines and class positions.

Everything here works on ScoreRecord values already loaded for one
class-term; the report workflow in services.py does the loading.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional

from .grading import resolve_grade
from .ranking import competition_rank, gradable_records
from .subject_stats import compute_subject_statistics, rank_subject

ABSENT = 'Absent'
EXEMPT = 'Exempt'
NOT_TAKEN = 'Not Taken'


@dataclass(frozen=True)
class StudentAggregate:
    total_score: Decimal
    average_score: Decimal
    grade: Optional[str]
    remark: Optional[str]
    subject_count: int


@dataclass(frozen=True)
class SubjectResult:
    """One line of a report card."""
    ca1: Optional[Decimal] = None
    ca2: Optional[Decimal] = None
    ca3: Optional[Decimal] = None
    exam: Optional[Decimal] = None
    score: Optional[Decimal] = None
    grade: Optional[str] = None
    remark: Optional[str] = None
    position: Optional[int] = None
    out_of: Optional[int] = None
    lowest: Optional[Decimal] = None
    highest: Optional[Decimal] = None
    average: Optional[Decimal] = None


@dataclass(frozen=True)
class StudentReport:
    student_id: Any
    subjects: Dict[Any, SubjectResult] = field(default_factory=dict)
    aggregate: Optional[StudentAggregate] = None
    position: Optional[int] = None
    out_of: int = 0


def average_of(assessments):
    """(total, count, average) over the gradable assessments; average is 0 when count is 0."""
    totals = [r.total for r in gradable_records(assessments)]
    total = sum(totals, Decimal('0'))
    count = len(totals)
    average = total / count if count else Decimal('0')
    return total, count, average


def compute_student_aggregate(assessments, grading_scheme):
    """
    Total, average and overall grade for one student's assessments.

    Args:
        assessments: the student's ScoreRecords for the term
        grading_scheme: GradingScheme used to grade the average

    Returns:
        StudentAggregate (grade and remark are None when the average is ungraded)
    """
    total, count, average = average_of(assessments)
    result = resolve_grade(average, grading_scheme)
    return StudentAggregate(
        total_score=total,
        average_score=average,
        grade=result.grade,
        remark=result.remark,
        subject_count=count,
    )


def build_subject_result(subject_id, student_id, class_records, grading_scheme,
                         statistics=None, ranking=None):
    """
    Report line for one subject, with position and statistics over the class.

    statistics and ranking can be passed in when the caller builds lines for
    many students of the same subject.
    """
    record = next(
        (r for r in class_records if r.subject_id == subject_id and r.student_id == student_id),
        None,
    )
    if record is None:
        return SubjectResult(remark=NOT_TAKEN)
    if not record.is_gradable:
        return SubjectResult(remark=ABSENT if record.is_absent else EXEMPT)

    if statistics is None:
        statistics = compute_subject_statistics(class_records, subject_id)
    if ranking is None:
        ranking = rank_subject(class_records, subject_id)

    position = next((e.position for e in ranking if e.student_id == student_id), None)
    score = record.total
    grade = resolve_grade(score, grading_scheme)

    return SubjectResult(
        ca1=record.ca1 or Decimal('0'),
        ca2=record.ca2 or Decimal('0'),
        ca3=record.ca3 or Decimal('0'),
        exam=record.exam or Decimal('0'),
        score=score,
        grade=grade.grade,
        remark=grade.remark,
        position=position,
        out_of=statistics.total_students,
        lowest=statistics.lowest,
        highest=statistics.highest,
        average=statistics.average,
    )


def compute_class_positions(students):
    """
    Class positions by average score.

    Args:
        students: iterable of (student_id, assessments) pairs

    Returns:
        dict mapping student_id to position. Students without gradable
        subjects rank with an average of 0.
    """
    averages = [(student_id, average_of(assessments)[2]) for student_id, assessments in students]
    ranked = competition_rank(averages, score_of=lambda s: s[1], key_of=lambda s: s[0])
    return {entry.student_id: entry.position for entry in ranked}


def group_by_student(records, student_ids=()):
    """Map student_id -> records, with an empty list for listed students without records."""
    grouped = {student_id: [] for student_id in student_ids}
    for record in records:
        grouped.setdefault(record.student_id, []).append(record)
    return grouped


def build_student_report(student_id, subject_ids, class_records, grading_scheme, peer_ids=()):
    """
    Report card data for one student of a class-term.

    Args:
        student_id: the student the report is for
        subject_ids: subjects offered by the class-term, in display order
        class_records: ScoreRecords of every student in the class-term
        grading_scheme: GradingScheme for subject and overall grades
        peer_ids: every student enrolled in the class-term, including those
            with no assessments yet

    Returns:
        StudentReport
    """
    class_records = list(class_records)
    subject_ids = list(subject_ids)
    offered = set(subject_ids)

    subjects = {}
    for subject_id in subject_ids:
        subjects[subject_id] = build_subject_result(
            subject_id, student_id, class_records, grading_scheme
        )

    own_records = [
        r for r in class_records
        if r.student_id == student_id and r.subject_id in offered
    ]
    aggregate = compute_student_aggregate(own_records, grading_scheme)

    by_student = group_by_student(class_records, list(peer_ids) + [student_id])
    positions = compute_class_positions(by_student.items())

    return StudentReport(
        student_id=student_id,
        subjects=subjects,
        aggregate=aggregate,
        position=positions.get(student_id),
        out_of=len(positions),
    )
