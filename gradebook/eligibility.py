"""
Promotion/transfer eligibility for student transitions.

The decision is advisory: it is shown next to each student when an admin
prepares transitions, but executing a transition does not require it.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from .aggregates import average_of
from .grading import resolve_grade, to_decimal
from .ranking import gradable_records

EXCELLENT = 'Excellent performance - meets all criteria'
GOOD = 'Good performance - acceptable with few failures'
HIGH_PASS_RATE = 'High pass rate - eligible despite lower average'
BELOW_MINIMUM_AVERAGE = 'Below minimum average score requirement'
TOO_MANY_FAILURES = 'Too many failed subjects'
LOW_PASS_RATE = 'Low pass rate - needs improvement'
NOT_MET = 'Does not meet transition criteria'


@dataclass(frozen=True)
class TransitionEligibility:
    is_eligible: bool
    reason: str


@dataclass(frozen=True)
class TransitionPerformance:
    total_score: Decimal
    average_score: Decimal
    grade: Optional[str]
    remark: Optional[str]
    subjects_offered: int
    subjects_passed: int
    subjects_failed: int
    pass_rate: Decimal
    subject_grades: Tuple[Optional[str], ...]
    eligibility: TransitionEligibility


def decide_eligibility(average_score, pass_rate, failed_subjects, pass_mark):
    """
    Apply the transition rules in order; the first rule that matches decides.

    1. average >= pass mark and pass rate >= 50
    2. average >= 80% of pass mark and at most 2 failed subjects
    3. pass rate >= 70
    Otherwise not eligible, with the reason picked from the most serious
    shortfall.
    """
    average_score = to_decimal(average_score)
    pass_rate = to_decimal(pass_rate)
    pass_mark = to_decimal(pass_mark)

    if average_score >= pass_mark and pass_rate >= 50:
        return TransitionEligibility(True, EXCELLENT)
    if average_score >= pass_mark * Decimal('0.8') and failed_subjects <= 2:
        return TransitionEligibility(True, GOOD)
    if pass_rate >= 70:
        return TransitionEligibility(True, HIGH_PASS_RATE)

    if average_score < pass_mark * Decimal('0.6'):
        reason = BELOW_MINIMUM_AVERAGE
    elif failed_subjects > 3:
        reason = TOO_MANY_FAILURES
    elif pass_rate < 40:
        reason = LOW_PASS_RATE
    else:
        reason = NOT_MET
    return TransitionEligibility(False, reason)


def compute_pass_rate(subjects_passed, subjects_offered):
    """Percentage of offered subjects passed; 0 when nothing was offered."""
    if not subjects_offered:
        return Decimal('0')
    return Decimal(subjects_passed) / Decimal(subjects_offered) * 100


def assess_performance(assessments, grading_scheme):
    """
    Summarise a student's term for the transition screen.

    Only gradable (not absent, not exempt) assessments are counted as
    offered. A subject passes when its total reaches the scheme's pass mark.
    """
    records = gradable_records(assessments)
    totals = [r.total for r in records]
    total, offered, average = average_of(records)

    passed = sum(1 for t in totals if grading_scheme.is_passing(t))
    failed = offered - passed
    pass_rate = compute_pass_rate(passed, offered)

    overall = resolve_grade(average, grading_scheme)
    return TransitionPerformance(
        total_score=total,
        average_score=average,
        grade=overall.grade,
        remark=overall.remark,
        subjects_offered=offered,
        subjects_passed=passed,
        subjects_failed=failed,
        pass_rate=pass_rate,
        subject_grades=tuple(resolve_grade(t, grading_scheme).grade for t in totals),
        eligibility=decide_eligibility(average, pass_rate, failed, grading_scheme.pass_mark),
    )
