"""
Report and transition workflows.

These functions load rows for one school, hand them to the results engine
(grading, subject_stats, aggregates, eligibility) and shape the output for
the JSON views. Every function takes a SchoolScope first; it decides which
school's rows the caller may read or change.
"""
import logging
from dataclasses import dataclass, asdict
from typing import Any, Optional

from django.core.cache import cache
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from academics.models import ClassTerm, ClassSubject
from core.models import AcademicYear, Term
from students.models import Student, StudentClassTerm
from . import config
from .aggregates import (
    build_student_report, compute_class_positions, compute_student_aggregate,
    group_by_student,
)
from .eligibility import assess_performance
from .grading import fallback_grading_scheme, resolve_grade
from .models import Assessment, GradingSystem, StudentTransition
from .ranking import competition_rank
from .signals import grading_scheme_cache_key
from .subject_stats import compute_subject_statistics

logger = logging.getLogger(__name__)


class TransitionError(ValidationError):
    """A transition batch could not be executed; nothing was written."""


# ============ Access scope ============

@dataclass(frozen=True)
class SchoolScope:
    """
    The school a caller may act on. school_id=None means every school
    (superusers and background tasks).
    """
    user: Any = None
    school_id: Optional[int] = None

    @property
    def is_platform_wide(self):
        return self.school_id is None

    def check(self, school_id, message='Access denied'):
        if self.school_id is not None and school_id != self.school_id:
            raise PermissionDenied(message)


PLATFORM_SCOPE = SchoolScope()


def scope_for_user(user):
    """
    Resolve the scope for a request user.

    Superusers act on every school; school admins on the school they are
    linked to through SchoolAdmin.
    """
    if user is None or not user.is_authenticated:
        raise PermissionDenied('Unauthorized')
    if user.is_superuser:
        return SchoolScope(user=user, school_id=None)

    link = getattr(user, 'school_admin', None)
    if link is None:
        if user.is_staff:
            raise PermissionDenied('Admin not assigned to a school')
        raise PermissionDenied('Unauthorized')
    return SchoolScope(user=user, school_id=link.school_id)


# ============ Grading system ============

def get_grading_scheme(school_id):
    """
    The school's default grading scheme, or the built-in fallback when the
    school has not configured one. Cached until the system changes.

    Raises InvalidConfiguration if the default system has no levels.
    """
    key = grading_scheme_cache_key(school_id)
    scheme = cache.get(key)
    if scheme is not None:
        return scheme

    system = GradingSystem.objects.filter(
        school_id=school_id, is_default=True
    ).prefetch_related('levels').first()

    if system is None:
        logger.info(f"No default grading system for school {school_id}, using fallback")
        scheme = fallback_grading_scheme()
    else:
        scheme = system.to_scheme()

    cache.set(key, scheme, config.GRADING_SYSTEM_CACHE_TIMEOUT)
    return scheme


def serialize_scheme(scheme):
    return {
        'pass_mark': scheme.pass_mark,
        'levels': [asdict(band) for band in scheme.bands],
    }


# ============ Loading helpers ============

def _get_class_term(scope, class_term_id):
    class_term = ClassTerm.objects.select_related(
        'class_assigned', 'term__academic_year'
    ).get(pk=class_term_id)
    scope.check(class_term.class_assigned.school_id, "Class does not belong to admin's school")
    return class_term


def _class_subjects(class_term):
    return [
        cs.subject for cs in ClassSubject.objects.filter(
            class_term=class_term
        ).select_related('subject').order_by('-subject__is_core', 'subject__name')
    ]


def _class_records(class_term, subjects):
    """ScoreRecords of the class-term, limited to the subjects it offers."""
    return [
        a.to_score_record() for a in Assessment.objects.filter(
            term_id=class_term.term_id,
            student_class_term__class_term=class_term,
            subject__in=subjects,
        )
    ]


def _enrolments(class_term):
    return list(StudentClassTerm.objects.filter(
        class_term=class_term
    ).select_related('student').order_by('student__first_name', 'student__last_name'))


def _student_header(student):
    return {
        'student_id': student.pk,
        'student_name': f"{student.first_name} {student.last_name}",
        'admission_no': student.admission_number,
        'gender': student.gender,
    }


# ============ Student reports ============

def get_student_report_data(scope, student_id, term_id):
    """
    Report card data for a student in a term.

    Returns:
        dict with the student header, 'subjects' (one entry per subject the
        class-term offers), totals, overall grade, class position and the
        grading scheme used.
    """
    student = Student.objects.get(pk=student_id)
    scope.check(student.school_id, "Student does not belong to admin's school")

    term = Term.objects.select_related('academic_year').get(pk=term_id)
    scope.check(term.academic_year.school_id, "Term does not belong to admin's school")

    enrolment = StudentClassTerm.objects.filter(
        student=student, class_term__term=term
    ).select_related('class_term__class_assigned').first()
    if enrolment is None:
        raise StudentClassTerm.DoesNotExist('Student not found in any class for this term')

    class_term = enrolment.class_term
    scheme = get_grading_scheme(student.school_id)
    subjects = _class_subjects(class_term)
    peer_ids = StudentClassTerm.objects.filter(
        class_term=class_term
    ).values_list('student_id', flat=True)

    report = build_student_report(
        student.pk,
        [s.pk for s in subjects],
        _class_records(class_term, subjects),
        scheme,
        peer_ids=list(peer_ids),
    )

    data = _student_header(student)
    data.update({
        'class_name': class_term.class_assigned.name,
        'term_name': term.name,
        'subjects': [
            dict(subject_id=s.pk, subject_name=s.name, subject_code=s.code,
                 **asdict(report.subjects[s.pk]))
            for s in subjects
        ],
        'total_score': report.aggregate.total_score,
        'average_score': report.aggregate.average_score,
        'grade': report.aggregate.grade,
        'remark': report.aggregate.remark,
        'subject_count': report.aggregate.subject_count,
        'position': report.position,
        'out_of': report.out_of,
        'grading_system': serialize_scheme(scheme),
    })
    return data


def get_class_statistics(scope, class_term_id):
    """Highest, lowest and average per subject, and over every gradable total in the class."""
    class_term = _get_class_term(scope, class_term_id)
    subjects = _class_subjects(class_term)
    records = _class_records(class_term, subjects)

    per_subject = {s.pk: compute_subject_statistics(records, s.pk) for s in subjects}
    all_totals = [r.total for r in records if r.is_gradable]

    return {
        'class_name': class_term.class_assigned.name,
        'term_name': class_term.term.name,
        'highest_total': max(all_totals) if all_totals else 0,
        'lowest_total': min(all_totals) if all_totals else 0,
        'class_average': sum(all_totals) / len(all_totals) if all_totals else 0,
        'subjects': [
            dict(subject_id=s.pk, subject_name=s.name, **asdict(per_subject[s.pk]))
            for s in subjects
        ],
    }


def get_class_term_results(scope, class_term_id):
    """
    Broadsheet for a class-term: every student's subject scores, totals,
    overall grade and class position, in position order.
    """
    class_term = _get_class_term(scope, class_term_id)
    scheme = get_grading_scheme(class_term.class_assigned.school_id)
    subjects = _class_subjects(class_term)
    enrolments = _enrolments(class_term)

    records = _class_records(class_term, subjects)
    by_student = group_by_student(records, [e.student_id for e in enrolments])
    positions = compute_class_positions(by_student.items())

    results = []
    for enrolment in enrolments:
        own = {r.subject_id: r for r in by_student.get(enrolment.student_id, [])}
        subject_scores = {}
        for subject in subjects:
            record = own.get(subject.pk)
            total = record.total if record is not None else None
            subject_scores[subject.pk] = {
                'score': total,
                'grade': resolve_grade(total, scheme).grade,
            }

        aggregate = compute_student_aggregate(own.values(), scheme)
        row = _student_header(enrolment.student)
        row.update({
            'subjects': subject_scores,
            'total_score': aggregate.total_score if aggregate.subject_count else None,
            'average_score': aggregate.average_score,
            'grade': aggregate.grade,
            'position': positions.get(enrolment.student_id),
        })
        results.append(row)

    results.sort(key=lambda r: (r['position'] is None, r['position'] or 0, r['student_name']))
    return {
        'class_name': class_term.class_assigned.name,
        'term_name': class_term.term.name,
        'subjects': [{'id': s.pk, 'name': s.name, 'code': s.code} for s in subjects],
        'results': results,
    }


# ============ Publishing ============

def results_are_complete(student_ids, subject_ids, assessments):
    """
    True when every student has, for every subject, an assessment that is
    absent, exempt or fully entered.
    """
    complete = {
        (a.student_id, a.subject_id) for a in assessments if a.is_complete
    }
    return all(
        (student_id, subject_id) in complete
        for student_id in student_ids
        for subject_id in subject_ids
    )


def auto_publish_class_term_results(scope, class_term_id):
    """
    Publish a class-term's results if they are complete.

    Returns:
        tuple: (published: bool, message: str)
    """
    class_term = _get_class_term(scope, class_term_id)
    subject_ids = list(ClassSubject.objects.filter(
        class_term=class_term
    ).values_list('subject_id', flat=True))
    enrolments = StudentClassTerm.objects.filter(class_term=class_term)
    student_ids = list(enrolments.values_list('student_id', flat=True))

    assessments = Assessment.objects.filter(
        student_class_term__in=enrolments,
        subject_id__in=subject_ids,
        term_id=class_term.term_id,
    )

    if not results_are_complete(student_ids, subject_ids, list(assessments)):
        return False, 'Results incomplete, cannot publish'

    updated = Assessment.objects.filter(
        student_class_term__in=enrolments,
        term_id=class_term.term_id,
    ).update(is_published=True)
    logger.info(f"Published {updated} assessments for {class_term}")
    return True, 'Results published successfully'


# ============ Transitions ============

def get_transition_options(scope):
    """Academic years with their terms, and the current term."""
    years = AcademicYear.objects.prefetch_related('terms').order_by('-start_date')
    terms = Term.objects.filter(is_current=True).select_related('academic_year')
    if not scope.is_platform_wide:
        years = years.filter(school_id=scope.school_id)
        terms = terms.filter(academic_year__school_id=scope.school_id)

    current = terms.first()
    return {
        'sessions': [
            {
                'id': year.pk,
                'name': year.name,
                'terms': [
                    {'id': t.pk, 'name': t.name, 'is_current': t.is_current}
                    for t in year.terms.all()
                ],
            }
            for year in years
        ],
        'current_term': {
            'id': current.pk,
            'name': current.name,
            'session': current.academic_year.name,
        } if current else None,
    }


def get_transition_classes(scope, from_term_id, to_term_id):
    """Class-terms of the source and destination terms with their enrolment counts."""
    from_term = Term.objects.select_related('academic_year').get(pk=from_term_id)
    to_term = Term.objects.select_related('academic_year').get(pk=to_term_id)
    scope.check(from_term.academic_year.school_id, "Term does not belong to admin's school")
    scope.check(to_term.academic_year.school_id, "Term does not belong to admin's school")

    def class_terms_for(term):
        qs = ClassTerm.objects.filter(term=term).select_related(
            'class_assigned'
        ).annotate(student_count=Count('students')).order_by('class_assigned__name')
        return [
            {
                'id': ct.pk,
                'class_id': ct.class_assigned_id,
                'class_name': ct.class_assigned.name,
                'level': ct.class_assigned.level,
                'student_count': ct.student_count,
            }
            for ct in qs
        ]

    return {
        'source_classes': class_terms_for(from_term),
        'destination_classes': class_terms_for(to_term),
    }


def get_students_for_transition(scope, class_term_id):
    """
    Performance, eligibility and class position for every student in a class-term.
    """
    class_term = _get_class_term(scope, class_term_id)
    scheme = get_grading_scheme(class_term.class_assigned.school_id)
    enrolments = _enrolments(class_term)
    by_student = group_by_student(
        _class_records(class_term, _class_subjects(class_term)),
        [e.student_id for e in enrolments],
    )

    students = []
    for enrolment in enrolments:
        performance = assess_performance(by_student[enrolment.student_id], scheme)
        row = _student_header(enrolment.student)
        row.update({
            'student_class_term_id': enrolment.pk,
            'average_score': performance.average_score,
            'grade': performance.grade,
            'remark': performance.remark,
            'subjects_offered': performance.subjects_offered,
            'subjects_passed': performance.subjects_passed,
            'subjects_failed': performance.subjects_failed,
            'pass_rate': performance.pass_rate,
            'is_eligible': performance.eligibility.is_eligible,
            'eligibility_reason': performance.eligibility.reason,
            'subject_grades': list(performance.subject_grades),
        })
        students.append(row)

    ranked = competition_rank(
        students,
        score_of=lambda s: s['average_score'],
        key_of=lambda s: s['student_id'],
    )
    positions = {entry.student_id: entry.position for entry in ranked}
    for row in students:
        row['position'] = positions[row['student_id']]
    students.sort(key=lambda s: (s['position'], s['student_name']))

    eligible = sum(1 for s in students if s['is_eligible'])
    averages = [s['average_score'] for s in students]
    return {
        'class_info': {
            'class_name': class_term.class_assigned.name,
            'class_level': class_term.class_assigned.level,
            'term_name': class_term.term.name,
        },
        'students': students,
        'grading_system': serialize_scheme(scheme),
        'statistics': {
            'total_students': len(students),
            'eligible_students': eligible,
            'ineligible_students': len(students) - eligible,
            'average_class_score': sum(averages) / len(averages) if averages else 0,
        },
    }


def execute_student_transitions(scope, user, from_class_term_id, to_class_term_id,
                                student_ids, transition_type, notes=''):
    """
    Move students from one class-term to another and record each move.

    The whole batch is one transaction: if any student is missing from the
    source class or already in the destination class, nothing is written.

    Returns:
        dict with 'transitions_created', 'transitions' and a summary 'message'
    """
    if transition_type not in StudentTransition.TransitionType.values:
        raise TransitionError(f'Invalid transition type: {transition_type}')
    if not student_ids:
        raise TransitionError('No students selected for transition')
    if str(from_class_term_id) == str(to_class_term_id):
        raise TransitionError('Source and destination class must be different')

    from_class_term = _get_class_term(scope, from_class_term_id)
    to_class_term = _get_class_term(scope, to_class_term_id)
    if from_class_term.class_assigned.school_id != to_class_term.class_assigned.school_id:
        raise PermissionDenied('Classes do not belong to the same school')

    created = []
    with transaction.atomic():
        for student_id in student_ids:
            if not StudentClassTerm.objects.filter(
                student_id=student_id, class_term=from_class_term
            ).exists():
                raise TransitionError(f'Student {student_id} not found in source class')

            if StudentClassTerm.objects.filter(
                student_id=student_id, class_term=to_class_term
            ).exists():
                raise TransitionError(f'Student {student_id} already exists in destination class')

            enrolment = StudentClassTerm.objects.create(
                student_id=student_id, class_term=to_class_term
            )
            record = StudentTransition.objects.create(
                student_id=student_id,
                from_class_term=from_class_term,
                to_class_term=to_class_term,
                transition_type=transition_type,
                transition_date=timezone.now(),
                notes=notes or '',
                created_by=user,
            )
            created.append({
                'student_id': int(student_id),
                'transition_id': record.pk,
                'new_student_class_term_id': enrolment.pk,
            })

    count = len(created)
    message = (
        f"Successfully transitioned {count} student{'s' if count > 1 else ''} "
        f"from {from_class_term.class_assigned.name} to {to_class_term.class_assigned.name}"
    )
    logger.info(f"{message} ({transition_type}, by {user})")
    return {
        'transitions_created': count,
        'transitions': created,
        'message': message,
    }


def _term_label(class_term):
    return f"{class_term.term.academic_year.name} - {class_term.term.name}"


def get_transition_history(scope, student_id=None, class_term_id=None):
    """Most recent transitions first, optionally for one student or class-term."""
    transitions = StudentTransition.objects.select_related(
        'student',
        'from_class_term__class_assigned', 'from_class_term__term__academic_year',
        'to_class_term__class_assigned', 'to_class_term__term__academic_year',
    )
    if student_id:
        transitions = transitions.filter(student_id=student_id)
    if class_term_id:
        transitions = transitions.filter(
            Q(from_class_term_id=class_term_id) | Q(to_class_term_id=class_term_id)
        )
    if not scope.is_platform_wide:
        transitions = transitions.filter(student__school_id=scope.school_id)

    return [
        {
            'id': t.pk,
            'student_name': f"{t.student.first_name} {t.student.last_name}",
            'admission_no': t.student.admission_number,
            'from_class': t.from_class_term.class_assigned.name,
            'from_term': _term_label(t.from_class_term),
            'to_class': t.to_class_term.class_assigned.name,
            'to_term': _term_label(t.to_class_term),
            'transition_type': t.transition_type,
            'transition_date': t.transition_date,
            'notes': t.notes,
            'created_by': t.created_by_id,
        }
        for t in transitions.order_by('-transition_date')[:config.TRANSITION_HISTORY_LIMIT]
    ]


def get_transition_statistics(scope, term_id):
    """Number of transitions into a term, by transition type."""
    transitions = StudentTransition.objects.filter(to_class_term__term_id=term_id)
    if not scope.is_platform_wide:
        transitions = transitions.filter(student__school_id=scope.school_id)

    by_type = {
        row['transition_type']: row['count']
        for row in transitions.values('transition_type').annotate(count=Count('id')).order_by()
    }
    return {
        'total_transitions': sum(by_type.values()),
        'by_type': by_type,
    }
