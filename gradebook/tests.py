import json
from datetime import date, timedelta
from decimal import Decimal
from io import BytesIO, StringIO
from unittest import mock

import openpyxl
from celery.exceptions import Retry
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.exceptions import PermissionDenied, ValidationError
from django.core.management import call_command
from django.db import OperationalError
from django.db.models import ProtectedError
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse

from academics.models import Class, Subject, ClassTerm, ClassSubject
from core.models import AcademicYear, Term
from schools.models import School, SchoolAdmin
from students.models import Student, StudentClassTerm

from . import services
from .aggregates import (
    ABSENT, EXEMPT, NOT_TAKEN, build_student_report, build_subject_result,
    compute_class_positions, compute_student_aggregate,
)
from .eligibility import (
    BELOW_MINIMUM_AVERAGE, EXCELLENT, GOOD, HIGH_PASS_RATE, LOW_PASS_RATE,
    NOT_MET, TOO_MANY_FAILURES, assess_performance, compute_pass_rate,
    decide_eligibility,
)
from .exports import build_class_results_workbook
from .grading import (
    UNGRADED, GradeBand, GradingScheme, InvalidConfiguration,
    fallback_grading_scheme, is_passing, resolve_grade,
)
from .models import Assessment, GradeLevel, GradingSystem, StudentTransition
from .ranking import ScoreRecord, competition_rank
from .subject_stats import (
    EMPTY_STATISTICS, compute_subject_positions, compute_subject_statistics,
)
from .tasks import publish_class_term_results


User = get_user_model()


def record(student_id, subject_id, total=None, absent=False, exempt=False):
    """ScoreRecord with the whole total in the exam component."""
    return ScoreRecord(student_id, subject_id, exam=total, is_absent=absent, is_exempt=exempt)


# ============ Results engine ============

class GradingLookupTest(SimpleTestCase):
    """Tests for resolve_grade and GradingScheme."""

    def setUp(self):
        self.scheme = fallback_grading_scheme()

    def test_resolves_band(self):
        """Test a score inside a band gets its grade and remark."""
        result = resolve_grade(85, self.scheme)
        self.assertEqual(result.grade, 'A1')
        self.assertEqual(result.remark, 'Excellent')
        self.assertTrue(result.is_graded)

    def test_band_edges_are_inclusive(self):
        """Test min and max scores both belong to the band."""
        self.assertEqual(resolve_grade(80, self.scheme).grade, 'A1')
        self.assertEqual(resolve_grade(100, self.scheme).grade, 'A1')
        self.assertEqual(resolve_grade(79, self.scheme).grade, 'A2')
        self.assertEqual(resolve_grade(40, self.scheme).grade, 'C2')
        self.assertEqual(resolve_grade(39, self.scheme).grade, 'F')
        self.assertEqual(resolve_grade(0, self.scheme).grade, 'F')

    def test_gap_between_bands_is_ungraded(self):
        """Test a fractional score between integer bands is not given a letter."""
        self.assertIs(resolve_grade(Decimal('79.5'), self.scheme), UNGRADED)
        self.assertIs(resolve_grade(105, self.scheme), UNGRADED)
        self.assertFalse(UNGRADED.is_graded)

    def test_none_is_ungraded(self):
        self.assertIs(resolve_grade(None, self.scheme), UNGRADED)

    def test_empty_scheme_raises(self):
        """Test a scheme without bands is a configuration error."""
        with self.assertRaises(InvalidConfiguration):
            GradingScheme(bands=(), pass_mark=40)

    def test_bands_sorted_highest_first(self):
        scheme = GradingScheme.from_levels([(0, 49, 'F', 'Fail'), (50, 100, 'P', 'Pass')], 50)
        self.assertEqual([b.grade for b in scheme.bands], ['P', 'F'])

    def test_overlapping_bands_resolve_to_highest_min(self):
        """Test the band with the higher minimum wins where bands overlap."""
        scheme = GradingScheme(
            bands=(GradeBand(0, 60, 'LOW', 'Low'), GradeBand(50, 100, 'HIGH', 'High')),
            pass_mark=40,
        )
        self.assertEqual(resolve_grade(55, scheme).grade, 'HIGH')
        self.assertEqual(resolve_grade(45, scheme).grade, 'LOW')

    def test_every_score_in_band_resolves_to_it(self):
        """Test integer scores 0-100 each resolve to the band containing them."""
        for score in range(0, 101):
            result = resolve_grade(score, self.scheme)
            self.assertTrue(result.band.contains(Decimal(score)), score)

    def test_better_score_never_gets_lower_band(self):
        """Test grading is monotonic over a non-overlapping scheme."""
        previous = None
        for score in range(0, 101):
            band = resolve_grade(score, self.scheme).band
            if previous is not None:
                self.assertGreaterEqual(band.min_score, previous.min_score)
            previous = band

    def test_is_passing(self):
        self.assertTrue(is_passing(40, Decimal('40')))
        self.assertTrue(is_passing('55.5', 40))
        self.assertFalse(is_passing(Decimal('39.99'), 40))
        self.assertFalse(is_passing(None, 40))


class CompetitionRankTest(SimpleTestCase):
    """Tests for the shared tie-aware ranking."""

    def test_ties_share_position_and_skip(self):
        """Test totals 90, 80, 80, 70 rank 1, 2, 2, 4."""
        scores = [('a', 90), ('b', 80), ('c', 80), ('d', 70)]
        ranked = competition_rank(scores, score_of=lambda s: s[1], key_of=lambda s: s[0])
        self.assertEqual([e.position for e in ranked], [1, 2, 2, 4])
        self.assertEqual(ranked[0].student_id, 'a')
        self.assertEqual(ranked[3].student_id, 'd')

    def test_unsorted_input(self):
        scores = [('low', 10), ('high', 50), ('mid', 30)]
        ranked = competition_rank(scores, score_of=lambda s: s[1], key_of=lambda s: s[0])
        self.assertEqual([(e.student_id, e.position) for e in ranked],
                         [('high', 1), ('mid', 2), ('low', 3)])

    def test_all_equal(self):
        scores = [('a', 50), ('b', 50), ('c', 50)]
        ranked = competition_rank(scores, score_of=lambda s: s[1], key_of=lambda s: s[0])
        self.assertEqual([e.position for e in ranked], [1, 1, 1])

    def test_empty(self):
        self.assertEqual(competition_rank([], score_of=lambda s: s, key_of=lambda s: s), [])


class ScoreRecordTest(SimpleTestCase):

    def test_total_treats_missing_components_as_zero(self):
        r = ScoreRecord(1, 1, ca1=10, ca2=None, ca3='7.5', exam=50)
        self.assertEqual(r.total, Decimal('67.5'))
        self.assertFalse(r.has_all_components)

    def test_absent_and_exempt_have_no_total(self):
        self.assertIsNone(record(1, 1, 50, absent=True).total)
        self.assertIsNone(record(1, 1, 50, exempt=True).total)


class SubjectStatisticsTest(SimpleTestCase):
    """Tests for per-subject statistics and positions."""

    def setUp(self):
        self.records = [
            record(1, 'math', 90),
            record(2, 'math', 80),
            record(3, 'math', 80),
            record(4, 'math', 70),
            record(5, 'math', 99, absent=True),
            record(6, 'math', 99, exempt=True),
            record(1, 'eng', 40),
        ]

    def test_statistics(self):
        stats = compute_subject_statistics(self.records, 'math')
        self.assertEqual(stats.total_students, 4)
        self.assertEqual(stats.highest, Decimal('90'))
        self.assertEqual(stats.lowest, Decimal('70'))
        self.assertEqual(stats.average, Decimal('80'))

    def test_empty_statistics_are_zero(self):
        """Test a subject with no gradable records reports zeros."""
        self.assertEqual(compute_subject_statistics(self.records, 'art'), EMPTY_STATISTICS)
        only_absent = [record(1, 'art', 50, absent=True)]
        stats = compute_subject_statistics(only_absent, 'art')
        self.assertEqual(stats.total_students, 0)
        self.assertEqual(stats.average, Decimal('0'))

    def test_positions_with_ties(self):
        positions = [compute_subject_positions(self.records, 'math', s) for s in (1, 2, 3, 4)]
        self.assertEqual(positions, [1, 2, 2, 4])

    def test_absent_and_exempt_have_no_position(self):
        self.assertIsNone(compute_subject_positions(self.records, 'math', 5))
        self.assertIsNone(compute_subject_positions(self.records, 'math', 6))
        self.assertIsNone(compute_subject_positions(self.records, 'math', 99))

    def test_recomputing_gives_same_result(self):
        first = compute_subject_statistics(self.records, 'math')
        second = compute_subject_statistics(list(reversed(self.records)), 'math')
        self.assertEqual(first, second)


class StudentAggregateTest(SimpleTestCase):
    """Tests for totals, report lines and class positions."""

    def setUp(self):
        self.scheme = fallback_grading_scheme()
        self.class_records = [
            record(1, 'math', 90), record(1, 'eng', 60),
            record(2, 'math', 80), record(2, 'eng', 0, absent=True),
            record(3, 'math', 90), record(3, 'eng', 70),
        ]

    def test_aggregate(self):
        own = [r for r in self.class_records if r.student_id == 1]
        aggregate = compute_student_aggregate(own, self.scheme)
        self.assertEqual(aggregate.total_score, Decimal('150'))
        self.assertEqual(aggregate.average_score, Decimal('75'))
        self.assertEqual(aggregate.grade, 'A2')
        self.assertEqual(aggregate.subject_count, 2)

    def test_aggregate_skips_absent(self):
        own = [r for r in self.class_records if r.student_id == 2]
        aggregate = compute_student_aggregate(own, self.scheme)
        self.assertEqual(aggregate.average_score, Decimal('80'))
        self.assertEqual(aggregate.subject_count, 1)

    def test_aggregate_with_ungraded_average(self):
        """Test an average falling between bands leaves grade and remark empty."""
        aggregate = compute_student_aggregate([record(1, 'math', 80), record(1, 'eng', 79)], self.scheme)
        self.assertEqual(aggregate.average_score, Decimal('79.5'))
        self.assertIsNone(aggregate.grade)
        self.assertIsNone(aggregate.remark)

    def test_aggregate_without_subjects(self):
        """Test a student with nothing gradable averages 0."""
        aggregate = compute_student_aggregate([], self.scheme)
        self.assertEqual(aggregate.total_score, Decimal('0'))
        self.assertEqual(aggregate.average_score, Decimal('0'))
        self.assertEqual(aggregate.subject_count, 0)
        self.assertEqual(aggregate.grade, 'F')

    def test_subject_result_gradable(self):
        line = build_subject_result('math', 2, self.class_records, self.scheme)
        self.assertEqual(line.score, Decimal('80'))
        self.assertEqual(line.grade, 'A1')
        self.assertEqual(line.position, 3)
        self.assertEqual(line.out_of, 3)
        self.assertEqual(line.highest, Decimal('90'))
        self.assertEqual(line.lowest, Decimal('80'))

    def test_subject_result_absent(self):
        line = build_subject_result('eng', 2, self.class_records, self.scheme)
        self.assertEqual(line.remark, ABSENT)
        self.assertIsNone(line.score)
        self.assertIsNone(line.position)
        self.assertIsNone(line.out_of)

    def test_subject_result_exempt(self):
        line = build_subject_result('eng', 9, [record(9, 'eng', 50, exempt=True)], self.scheme)
        self.assertEqual(line.remark, EXEMPT)
        self.assertIsNone(line.grade)

    def test_subject_result_not_taken(self):
        line = build_subject_result('art', 1, self.class_records, self.scheme)
        self.assertEqual(line.remark, NOT_TAKEN)
        self.assertIsNone(line.score)
        self.assertIsNone(line.ca1)

    def test_class_positions_by_average(self):
        """Test students 2 and 3 tie on an 80 average and student 1 is third."""
        by_student = {}
        for r in self.class_records:
            by_student.setdefault(r.student_id, []).append(r)
        positions = compute_class_positions(by_student.items())
        self.assertEqual(positions, {2: 1, 3: 1, 1: 3})

    def test_student_without_records_ranks_last(self):
        positions = compute_class_positions([(1, [record(1, 'math', 50)]), (2, [])])
        self.assertEqual(positions, {1: 1, 2: 2})

    def test_student_report(self):
        report = build_student_report(
            1, ['math', 'eng', 'art'], self.class_records, self.scheme, peer_ids=[1, 2, 3, 4]
        )
        self.assertEqual(report.position, 3)
        self.assertEqual(report.out_of, 4)
        self.assertEqual(report.subjects['art'].remark, NOT_TAKEN)
        self.assertEqual(report.subjects['eng'].position, 2)
        self.assertEqual(report.aggregate.average_score, Decimal('75'))


class EligibilityTest(SimpleTestCase):
    """Tests for the transition decision list."""

    def test_excellent(self):
        result = decide_eligibility(65, 80, 1, 40)
        self.assertTrue(result.is_eligible)
        self.assertEqual(result.reason, EXCELLENT)

    def test_good_with_few_failures(self):
        result = decide_eligibility(35, 33, 2, 40)
        self.assertTrue(result.is_eligible)
        self.assertEqual(result.reason, GOOD)

    def test_high_pass_rate(self):
        result = decide_eligibility(30, 75, 1, 40)
        self.assertTrue(result.is_eligible)
        self.assertEqual(result.reason, HIGH_PASS_RATE)

    def test_below_minimum_average(self):
        result = decide_eligibility(20, 10, 5, 40)
        self.assertFalse(result.is_eligible)
        self.assertEqual(result.reason, BELOW_MINIMUM_AVERAGE)

    def test_too_many_failures(self):
        result = decide_eligibility(30, 50, 4, 40)
        self.assertFalse(result.is_eligible)
        self.assertEqual(result.reason, TOO_MANY_FAILURES)

    def test_low_pass_rate(self):
        result = decide_eligibility(30, 25, 3, 40)
        self.assertFalse(result.is_eligible)
        self.assertEqual(result.reason, LOW_PASS_RATE)

    def test_not_met(self):
        result = decide_eligibility(30, 50, 3, 40)
        self.assertFalse(result.is_eligible)
        self.assertEqual(result.reason, NOT_MET)

    def test_pass_rate(self):
        self.assertEqual(compute_pass_rate(3, 4), Decimal('75'))
        self.assertEqual(compute_pass_rate(0, 0), Decimal('0'))

    def test_assess_performance(self):
        """Test absent subjects are not offered and each total is checked against the pass mark."""
        performance = assess_performance(
            [record(1, 'math', 70), record(1, 'eng', 30), record(1, 'art', 0, absent=True)],
            fallback_grading_scheme(),
        )
        self.assertEqual(performance.subjects_offered, 2)
        self.assertEqual(performance.subjects_passed, 1)
        self.assertEqual(performance.subjects_failed, 1)
        self.assertEqual(performance.pass_rate, Decimal('50'))
        self.assertEqual(performance.average_score, Decimal('50'))
        self.assertEqual(performance.subject_grades, ('A2', 'F'))
        self.assertEqual(performance.eligibility.reason, EXCELLENT)


# ============ Database fixture ============

class ResultsFixtureMixin:
    """
    One school, a session with two terms, JSS1 in the first term and JSS2
    in the second. Three students in JSS1 with Mathematics and English:

        Ada   - Maths 90, English 60
        Bola  - Maths 80, English absent
        Chidi - Maths 90, English 70
    """

    def setUp(self):
        cache.clear()
        self.school = School.objects.create(name='Bright Future Academy')
        self.year = AcademicYear.objects.create(
            school=self.school, name='2024/2025',
            start_date=date(2024, 9, 1), end_date=date(2025, 7, 31), is_current=True,
        )
        self.term1 = Term.objects.create(
            academic_year=self.year, name='First Term', term_number=1,
            start_date=date(2024, 9, 1), end_date=date(2024, 12, 15), is_current=True,
        )
        self.term2 = Term.objects.create(
            academic_year=self.year, name='Second Term', term_number=2,
            start_date=date(2025, 1, 6), end_date=date(2025, 4, 10),
        )
        self.jss1 = Class.objects.create(school=self.school, name='JSS 1', level=Class.Level.JSS)
        self.jss2 = Class.objects.create(school=self.school, name='JSS 2', level=Class.Level.JSS)
        self.math = Subject.objects.create(school=self.school, name='Mathematics', code='MTH')
        self.english = Subject.objects.create(school=self.school, name='English Language', code='ENG')

        self.jss1_t1 = ClassTerm.objects.create(class_assigned=self.jss1, term=self.term1)
        self.jss2_t2 = ClassTerm.objects.create(class_assigned=self.jss2, term=self.term2)
        for class_term in (self.jss1_t1, self.jss2_t2):
            ClassSubject.objects.create(class_term=class_term, subject=self.math)
            ClassSubject.objects.create(class_term=class_term, subject=self.english)

        self.ada = self.make_student('Ada', 'JSS/001')
        self.bola = self.make_student('Bola', 'JSS/002')
        self.chidi = self.make_student('Chidi', 'JSS/003')

        self.score(self.ada, self.math, 90)
        self.score(self.ada, self.english, 60)
        self.score(self.bola, self.math, 80)
        self.score(self.bola, self.english, None, is_absent=True)
        self.score(self.chidi, self.math, 90)
        self.score(self.chidi, self.english, 70)

        self.admin = User.objects.create_user(username='admin', password='pass12345', is_staff=True)
        SchoolAdmin.objects.create(user=self.admin, school=self.school)
        self.scope = services.SchoolScope(user=self.admin, school_id=self.school.pk)

    def make_student(self, first_name, admission_number, class_term=None):
        student = Student.objects.create(
            school=self.school, first_name=first_name, last_name='Okafor',
            admission_number=admission_number,
        )
        StudentClassTerm.objects.create(student=student, class_term=class_term or self.jss1_t1)
        return student

    def score(self, student, subject, total, class_term=None, **flags):
        """Store an assessment with 10/10/10 CA and the remainder as exam."""
        enrolment = StudentClassTerm.objects.get(student=student, class_term=class_term or self.jss1_t1)
        components = {}
        if total is not None:
            components = dict(ca1=10, ca2=10, ca3=10, exam=total - 30)
        return Assessment.objects.create(
            student=student, subject=subject, term=enrolment.class_term.term,
            student_class_term=enrolment, **components, **flags,
        )

    def make_other_school(self):
        other = School.objects.create(name='Other School')
        year = AcademicYear.objects.create(
            school=other, name='2024/2025', start_date=date(2024, 9, 1), end_date=date(2025, 7, 31),
        )
        term = Term.objects.create(
            academic_year=year, name='First Term', term_number=1,
            start_date=date(2024, 9, 1), end_date=date(2024, 12, 15),
        )
        klass = Class.objects.create(school=other, name='JSS 1')
        return other, ClassTerm.objects.create(class_assigned=klass, term=term)


# ============ Models ============

class GradingSystemModelTest(ResultsFixtureMixin, TestCase):
    """Tests for GradingSystem and GradeLevel."""

    def make_system(self, name='Custom', is_default=True, levels=((50, 100, 'P', 'Pass'), (0, 49, 'F', 'Fail'))):
        system = GradingSystem.objects.create(
            school=self.school, name=name, pass_mark=50, is_default=is_default
        )
        for min_score, max_score, grade, remark in levels:
            GradeLevel.objects.create(
                grading_system=system, min_score=min_score, max_score=max_score,
                grade=grade, remark=remark,
            )
        return system

    def test_only_one_default_per_school(self):
        first = self.make_system('First')
        self.make_system('Second')
        first.refresh_from_db()
        self.assertFalse(first.is_default)

    def test_to_scheme(self):
        scheme = self.make_system().to_scheme()
        self.assertEqual(scheme.pass_mark, Decimal('50'))
        self.assertEqual([b.grade for b in scheme.bands], ['P', 'F'])

    def test_level_min_above_max_invalid(self):
        system = self.make_system(levels=())
        level = GradeLevel(grading_system=system, min_score=60, max_score=50, grade='X')
        with self.assertRaises(ValidationError):
            level.clean()

    def test_overlapping_level_invalid(self):
        system = self.make_system()
        level = GradeLevel(grading_system=system, min_score=45, max_score=55, grade='X')
        with self.assertRaises(ValidationError):
            level.clean()

    def test_fallback_when_school_has_no_system(self):
        scheme = services.get_grading_scheme(self.school.pk)
        self.assertEqual(scheme, fallback_grading_scheme())

    def test_default_system_used(self):
        self.make_system()
        self.assertEqual(services.get_grading_scheme(self.school.pk).bands[0].grade, 'P')

    def test_default_system_without_levels_raises(self):
        """Test an empty configured system is reported, not replaced by the fallback."""
        self.make_system(levels=())
        with self.assertRaises(InvalidConfiguration):
            services.get_grading_scheme(self.school.pk)

    def test_cached_scheme_refreshed_on_change(self):
        system = self.make_system()
        self.assertEqual(len(services.get_grading_scheme(self.school.pk).bands), 2)
        GradeLevel.objects.filter(grading_system=system, grade='F').update(max_score=39)
        GradeLevel.objects.create(grading_system=system, min_score=40, max_score=49, grade='C', remark='Credit')
        self.assertEqual(len(services.get_grading_scheme(self.school.pk).bands), 3)

    def test_cached_scheme_dropped_when_system_deleted(self):
        system = self.make_system()
        services.get_grading_scheme(self.school.pk)
        system.delete()
        self.assertEqual(services.get_grading_scheme(self.school.pk), fallback_grading_scheme())


class AssessmentModelTest(ResultsFixtureMixin, TestCase):

    def test_is_complete(self):
        self.assertTrue(Assessment.objects.get(student=self.ada, subject=self.math).is_complete)
        self.assertTrue(Assessment.objects.get(student=self.bola, subject=self.english).is_complete)
        partial = Assessment.objects.get(student=self.ada, subject=self.english)
        partial.exam = None
        self.assertFalse(partial.is_complete)
        self.assertFalse(partial.to_score_record().has_all_components)

    def test_exempt_without_components_is_complete(self):
        art = Subject.objects.create(school=self.school, name='Fine Art', code='ART')
        exempt = self.score(self.ada, art, None, is_exempt=True)
        self.assertTrue(exempt.is_complete)
        self.assertFalse(exempt.to_score_record().has_all_components)

    def test_to_score_record(self):
        r = Assessment.objects.get(student=self.ada, subject=self.math).to_score_record()
        self.assertEqual(r.total, Decimal('90'))
        self.assertEqual(r.student_id, self.ada.pk)


# ============ Workflows ============

class ScopeTest(ResultsFixtureMixin, TestCase):
    """Tests for resolving a user's school scope."""

    def test_school_admin(self):
        scope = services.scope_for_user(self.admin)
        self.assertEqual(scope.school_id, self.school.pk)
        self.assertFalse(scope.is_platform_wide)

    def test_superuser_is_platform_wide(self):
        root = User.objects.create_superuser(username='root', password='pass12345')
        self.assertTrue(services.scope_for_user(root).is_platform_wide)

    def test_staff_without_school(self):
        staff = User.objects.create_user(username='staff', password='pass12345', is_staff=True)
        with self.assertRaisesMessage(PermissionDenied, 'Admin not assigned to a school'):
            services.scope_for_user(staff)

    def test_regular_user(self):
        user = User.objects.create_user(username='parent', password='pass12345')
        with self.assertRaisesMessage(PermissionDenied, 'Unauthorized'):
            services.scope_for_user(user)

    def test_check_other_school(self):
        with self.assertRaises(PermissionDenied):
            self.scope.check(self.school.pk + 1000)
        services.PLATFORM_SCOPE.check(self.school.pk + 1000)


class StudentReportWorkflowTest(ResultsFixtureMixin, TestCase):
    """Tests for get_student_report_data."""

    def test_report(self):
        data = services.get_student_report_data(self.scope, self.ada.pk, self.term1.pk)
        self.assertEqual(data['student_name'], 'Ada Okafor')
        self.assertEqual(data['class_name'], 'JSS 1')
        self.assertEqual(data['total_score'], Decimal('150'))
        self.assertEqual(data['average_score'], Decimal('75'))
        self.assertEqual(data['grade'], 'A2')
        self.assertEqual(data['position'], 3)
        self.assertEqual(data['out_of'], 3)

        subjects = {s['subject_name']: s for s in data['subjects']}
        math = subjects['Mathematics']
        self.assertEqual(math['score'], Decimal('90'))
        self.assertEqual(math['position'], 1)
        self.assertEqual(math['out_of'], 3)
        self.assertEqual(math['lowest'], Decimal('80'))
        english = subjects['English Language']
        self.assertEqual(english['position'], 2)
        self.assertEqual(english['out_of'], 2)

    def test_absent_subject(self):
        data = services.get_student_report_data(self.scope, self.bola.pk, self.term1.pk)
        english = next(s for s in data['subjects'] if s['subject_code'] == 'ENG')
        self.assertEqual(english['remark'], ABSENT)
        self.assertIsNone(english['score'])
        self.assertEqual(data['position'], 1)

    def test_subject_without_assessment(self):
        dayo = self.make_student('Dayo', 'JSS/004')
        self.score(dayo, self.math, 50)
        data = services.get_student_report_data(self.scope, dayo.pk, self.term1.pk)
        english = next(s for s in data['subjects'] if s['subject_code'] == 'ENG')
        self.assertEqual(english['remark'], NOT_TAKEN)
        self.assertEqual(data['out_of'], 4)

    def test_student_not_enrolled_in_term(self):
        with self.assertRaises(StudentClassTerm.DoesNotExist):
            services.get_student_report_data(self.scope, self.ada.pk, self.term2.pk)

    def test_other_school_denied(self):
        other, _ = self.make_other_school()
        scope = services.SchoolScope(school_id=other.pk)
        with self.assertRaises(PermissionDenied):
            services.get_student_report_data(scope, self.ada.pk, self.term1.pk)


class ClassResultsWorkflowTest(ResultsFixtureMixin, TestCase):
    """Tests for class statistics, broadsheet and publishing."""

    def test_class_statistics(self):
        data = services.get_class_statistics(self.scope, self.jss1_t1.pk)
        self.assertEqual(data['highest_total'], Decimal('90'))
        self.assertEqual(data['lowest_total'], Decimal('60'))
        self.assertEqual(data['class_average'], Decimal('78'))
        math = next(s for s in data['subjects'] if s['subject_name'] == 'Mathematics')
        self.assertEqual(math['total_students'], 3)
        english = next(s for s in data['subjects'] if s['subject_name'] == 'English Language')
        self.assertEqual(english['total_students'], 2)
        self.assertEqual(english['average'], Decimal('65'))

    def test_class_statistics_empty_class(self):
        data = services.get_class_statistics(self.scope, self.jss2_t2.pk)
        self.assertEqual(data['highest_total'], 0)
        self.assertEqual(data['class_average'], 0)
        self.assertTrue(all(s['total_students'] == 0 for s in data['subjects']))

    def test_class_results_order(self):
        data = services.get_class_term_results(self.scope, self.jss1_t1.pk)
        rows = [(r['student_name'], r['position']) for r in data['results']]
        self.assertEqual(rows, [('Bola Okafor', 1), ('Chidi Okafor', 1), ('Ada Okafor', 3)])
        bola = data['results'][0]
        self.assertIsNone(bola['subjects'][self.english.pk]['score'])
        self.assertEqual(bola['subjects'][self.math.pk]['grade'], 'A1')

    def test_missing_class_term(self):
        with self.assertRaises(ClassTerm.DoesNotExist):
            services.get_class_term_results(self.scope, 999999)

    def test_publish_complete_results(self):
        published, message = services.auto_publish_class_term_results(self.scope, self.jss1_t1.pk)
        self.assertTrue(published)
        self.assertEqual(message, 'Results published successfully')
        self.assertFalse(Assessment.objects.filter(is_published=False).exists())

    def test_publish_refused_when_incomplete(self):
        Assessment.objects.filter(student=self.ada, subject=self.english).update(exam=None)
        published, message = services.auto_publish_class_term_results(self.scope, self.jss1_t1.pk)
        self.assertFalse(published)
        self.assertEqual(message, 'Results incomplete, cannot publish')
        self.assertFalse(Assessment.objects.filter(is_published=True).exists())

    def test_publish_refused_when_assessment_missing(self):
        Assessment.objects.filter(student=self.chidi, subject=self.english).delete()
        published, _ = services.auto_publish_class_term_results(self.scope, self.jss1_t1.pk)
        self.assertFalse(published)


class TransitionWorkflowTest(ResultsFixtureMixin, TestCase):
    """Tests for preparing and executing student transitions."""

    def test_options(self):
        data = services.get_transition_options(self.scope)
        self.assertEqual(len(data['sessions']), 1)
        self.assertEqual(len(data['sessions'][0]['terms']), 2)
        self.assertEqual(data['current_term']['id'], self.term1.pk)

    def test_options_scoped_to_school(self):
        self.make_other_school()
        data = services.get_transition_options(self.scope)
        self.assertEqual(len(data['sessions']), 1)

    def test_classes(self):
        data = services.get_transition_classes(self.scope, self.term1.pk, self.term2.pk)
        self.assertEqual(data['source_classes'][0]['student_count'], 3)
        self.assertEqual(data['destination_classes'][0]['class_name'], 'JSS 2')
        self.assertEqual(data['destination_classes'][0]['student_count'], 0)

    def test_students_for_transition(self):
        data = services.get_students_for_transition(self.scope, self.jss1_t1.pk)
        students = {s['student_name']: s for s in data['students']}
        self.assertEqual(students['Ada Okafor']['position'], 3)
        self.assertEqual(students['Bola Okafor']['position'], 1)
        self.assertEqual(students['Bola Okafor']['subjects_offered'], 1)
        self.assertTrue(students['Ada Okafor']['is_eligible'])
        self.assertEqual(students['Ada Okafor']['eligibility_reason'], EXCELLENT)
        self.assertEqual(data['statistics']['total_students'], 3)
        self.assertEqual(data['statistics']['eligible_students'], 3)

    def test_ineligible_student(self):
        Assessment.objects.filter(student=self.ada).update(ca1=0, ca2=0, ca3=0, exam=10)
        data = services.get_students_for_transition(self.scope, self.jss1_t1.pk)
        ada = next(s for s in data['students'] if s['student_id'] == self.ada.pk)
        self.assertFalse(ada['is_eligible'])
        self.assertEqual(ada['eligibility_reason'], BELOW_MINIMUM_AVERAGE)
        self.assertEqual(data['statistics']['ineligible_students'], 1)

    def test_execute(self):
        result = services.execute_student_transitions(
            self.scope, self.admin, self.jss1_t1.pk, self.jss2_t2.pk,
            [self.ada.pk, self.bola.pk], StudentTransition.TransitionType.PROMOTION,
            notes='End of session',
        )
        self.assertEqual(result['transitions_created'], 2)
        self.assertEqual(result['message'], 'Successfully transitioned 2 students from JSS 1 to JSS 2')
        self.assertTrue(StudentClassTerm.objects.filter(student=self.ada, class_term=self.jss2_t2).exists())
        transition = StudentTransition.objects.get(student=self.ada)
        self.assertEqual(transition.created_by, self.admin)
        self.assertEqual(transition.notes, 'End of session')
        # source enrolment and its results are kept
        self.assertTrue(StudentClassTerm.objects.filter(student=self.ada, class_term=self.jss1_t1).exists())

    def test_execute_rolls_back_on_missing_student(self):
        """Test one student missing from the source class aborts the whole batch."""
        outsider = self.make_student('Efe', 'JSS/009', class_term=self.jss2_t2)
        with self.assertRaisesMessage(services.TransitionError, f'Student {outsider.pk} not found in source class'):
            services.execute_student_transitions(
                self.scope, self.admin, self.jss1_t1.pk, self.jss2_t2.pk,
                [self.ada.pk, outsider.pk], 'PROMOTION',
            )
        self.assertFalse(StudentTransition.objects.exists())
        self.assertFalse(StudentClassTerm.objects.filter(student=self.ada, class_term=self.jss2_t2).exists())

    def test_execute_rejects_student_already_in_destination(self):
        StudentClassTerm.objects.create(student=self.bola, class_term=self.jss2_t2)
        with self.assertRaisesMessage(services.TransitionError, 'already exists in destination class'):
            services.execute_student_transitions(
                self.scope, self.admin, self.jss1_t1.pk, self.jss2_t2.pk,
                [self.ada.pk, self.bola.pk], 'PROMOTION',
            )
        self.assertEqual(StudentClassTerm.objects.filter(class_term=self.jss2_t2).count(), 1)

    def test_execute_validates_request(self):
        with self.assertRaises(services.TransitionError):
            services.execute_student_transitions(
                self.scope, self.admin, self.jss1_t1.pk, self.jss2_t2.pk, [self.ada.pk], 'GRADUATION'
            )
        with self.assertRaises(services.TransitionError):
            services.execute_student_transitions(
                self.scope, self.admin, self.jss1_t1.pk, self.jss2_t2.pk, [], 'PROMOTION'
            )
        with self.assertRaises(services.TransitionError):
            services.execute_student_transitions(
                self.scope, self.admin, self.jss1_t1.pk, self.jss1_t1.pk, [self.ada.pk], 'PROMOTION'
            )

    def test_execute_other_school_denied(self):
        _, foreign = self.make_other_school()
        with self.assertRaises(PermissionDenied):
            services.execute_student_transitions(
                self.scope, self.admin, self.jss1_t1.pk, foreign.pk, [self.ada.pk], 'TRANSFER'
            )

    def test_subject_not_offered_is_ignored_everywhere(self):
        """Test the report card and transition screen agree when a student has a score outside the class subjects."""
        art = Subject.objects.create(school=self.school, name='Fine Art', code='ART')
        self.score(self.bola, art, 40)

        report = services.get_student_report_data(self.scope, self.bola.pk, self.term1.pk)
        transition = services.get_students_for_transition(self.scope, self.jss1_t1.pk)
        row = next(s for s in transition['students'] if s['student_id'] == self.bola.pk)
        broadsheet = services.get_class_term_results(self.scope, self.jss1_t1.pk)
        line = next(r for r in broadsheet['results'] if r['student_id'] == self.bola.pk)

        self.assertEqual(report['average_score'], Decimal('80'))
        self.assertEqual(row['average_score'], report['average_score'])
        self.assertEqual(row['position'], report['position'])
        self.assertEqual(line['position'], report['position'])
        self.assertEqual(row['subjects_offered'], 1)

    def test_student_with_transitions_cannot_be_deleted(self):
        """Test the transition log survives attempts to delete the student."""
        services.execute_student_transitions(
            self.scope, self.admin, self.jss1_t1.pk, self.jss2_t2.pk, [self.ada.pk], 'PROMOTION'
        )
        with self.assertRaises(ProtectedError):
            self.ada.delete()
        self.assertEqual(StudentTransition.objects.filter(student=self.ada).count(), 1)

    def test_transition_records_are_append_only(self):
        services.execute_student_transitions(
            self.scope, self.admin, self.jss1_t1.pk, self.jss2_t2.pk, [self.ada.pk], 'PROMOTION'
        )
        transition = StudentTransition.objects.get()
        transition.notes = 'changed'
        with self.assertRaises(ValidationError):
            transition.save()
        with self.assertRaises(ValidationError):
            transition.delete()
        self.assertEqual(StudentTransition.objects.count(), 1)

    def test_history_and_statistics(self):
        services.execute_student_transitions(
            self.scope, self.admin, self.jss1_t1.pk, self.jss2_t2.pk, [self.ada.pk], 'PROMOTION'
        )
        services.execute_student_transitions(
            self.scope, self.admin, self.jss1_t1.pk, self.jss2_t2.pk, [self.bola.pk], 'TRANSFER'
        )
        StudentTransition.objects.filter(student=self.ada).update(
            transition_date=StudentTransition.objects.get(student=self.bola).transition_date - timedelta(days=1)
        )

        history = services.get_transition_history(self.scope)
        self.assertEqual([h['student_name'] for h in history], ['Bola Okafor', 'Ada Okafor'])
        self.assertEqual(history[0]['from_term'], '2024/2025 - First Term')

        own = services.get_transition_history(self.scope, student_id=self.ada.pk)
        self.assertEqual(len(own), 1)
        self.assertEqual(own[0]['transition_type'], 'PROMOTION')

        stats = services.get_transition_statistics(self.scope, self.term2.pk)
        self.assertEqual(stats['total_transitions'], 2)
        self.assertEqual(stats['by_type'], {'PROMOTION': 1, 'TRANSFER': 1})
        self.assertEqual(services.get_transition_statistics(self.scope, self.term1.pk)['total_transitions'], 0)

    @override_settings(GRADEBOOK_TRANSITION_HISTORY_LIMIT=1)
    def test_history_limit(self):
        services.execute_student_transitions(
            self.scope, self.admin, self.jss1_t1.pk, self.jss2_t2.pk,
            [self.ada.pk, self.bola.pk], 'PROMOTION',
        )
        self.assertEqual(len(services.get_transition_history(self.scope)), 1)


# ============ Views ============

@override_settings(SECURE_SSL_REDIRECT=False)
class GradebookViewTest(ResultsFixtureMixin, TestCase):
    """Tests for the JSON endpoints."""

    def setUp(self):
        super().setUp()
        self.client.force_login(self.admin)

    def test_login_required(self):
        self.client.logout()
        response = self.client.get(reverse('gradebook:class_results', args=[self.jss1_t1.pk]))
        self.assertEqual(response.status_code, 302)

    def test_non_admin_forbidden(self):
        user = User.objects.create_user(username='bursar', password='pass12345')
        self.client.force_login(user)
        response = self.client.get(reverse('gradebook:transition_options'))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json(), {'success': False, 'error': 'Unauthorized'})

    def test_student_report(self):
        response = self.client.get(reverse('gradebook:student_report', args=[self.ada.pk, self.term1.pk]))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['data']['position'], 3)
        self.assertEqual(body['data']['grade'], 'A2')

    def test_missing_student(self):
        response = self.client.get(reverse('gradebook:student_report', args=[999999, self.term1.pk]))
        self.assertEqual(response.status_code, 404)
        self.assertFalse(response.json()['success'])

    def test_other_school_class_forbidden(self):
        _, foreign = self.make_other_school()
        response = self.client.get(reverse('gradebook:class_statistics', args=[foreign.pk]))
        self.assertEqual(response.status_code, 403)

    def test_broken_grading_system(self):
        GradingSystem.objects.create(school=self.school, name='Empty', is_default=True)
        response = self.client.get(reverse('gradebook:class_results', args=[self.jss1_t1.pk]))
        self.assertEqual(response.status_code, 500)
        self.assertFalse(response.json()['success'])

    def test_export(self):
        response = self.client.get(reverse('gradebook:class_results_export', args=[self.jss1_t1.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertIn('attachment', response['Content-Disposition'])
        wb = openpyxl.load_workbook(BytesIO(response.content))
        ws = wb.active
        self.assertEqual(ws.cell(row=3, column=3).value, 'Student Name')
        self.assertEqual(ws.cell(row=4, column=1).value, 1)

    def test_publish_requires_post(self):
        url = reverse('gradebook:publish_results', args=[self.jss1_t1.pk])
        self.assertEqual(self.client.get(url).status_code, 405)
        response = self.client.post(url)
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['success'])

    def test_transition_classes_needs_terms(self):
        response = self.client.get(reverse('gradebook:transition_classes'))
        self.assertEqual(response.status_code, 400)
        response = self.client.get(
            reverse('gradebook:transition_classes'),
            {'from_term_id': self.term1.pk, 'to_term_id': self.term2.pk},
        )
        self.assertEqual(response.status_code, 200)

    def test_execute_transitions(self):
        payload = {
            'from_class_term_id': self.jss1_t1.pk,
            'to_class_term_id': self.jss2_t2.pk,
            'student_ids': [self.chidi.pk],
            'transition_type': 'PROMOTION',
        }
        url = reverse('gradebook:execute_transitions')
        response = self.client.post(url, json.dumps(payload), content_type='application/json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['transitions_created'], 1)

        response = self.client.post(url, json.dumps(payload), content_type='application/json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('already exists in destination class', response.json()['error'])

    def test_execute_transitions_bad_body(self):
        url = reverse('gradebook:execute_transitions')
        response = self.client.post(url, 'not json', content_type='application/json')
        self.assertEqual(response.status_code, 400)
        response = self.client.post(url, json.dumps({'student_ids': []}), content_type='application/json')
        self.assertEqual(response.status_code, 400)

    def test_history_and_statistics(self):
        response = self.client.get(reverse('gradebook:transition_history'), {'student_id': self.ada.pk})
        self.assertEqual(response.json(), {'success': True, 'data': []})
        response = self.client.get(reverse('gradebook:transition_statistics', args=[self.term2.pk]))
        self.assertEqual(response.json()['data']['total_transitions'], 0)


# ============ Export ============

class ResultsWorkbookTest(SimpleTestCase):

    def test_layout(self):
        subjects = [{'id': 1, 'name': 'Mathematics', 'code': 'MTH'}, {'id': 2, 'name': 'Art', 'code': ''}]
        results = [{
            'position': 1, 'admission_no': 'A1', 'student_name': 'Ada Okafor',
            'subjects': {1: {'score': Decimal('90'), 'grade': 'A1'}, 2: {'score': None, 'grade': None}},
            'total_score': Decimal('90'), 'average_score': Decimal('90'), 'grade': 'A1',
        }]
        ws = build_class_results_workbook('JSS 1', 'First Term', subjects, results).active
        self.assertEqual(ws.cell(row=1, column=1).value, 'JSS 1 - First Term')
        self.assertEqual([c.value for c in ws[3]],
                         ['Position', 'Admission No', 'Student Name', 'MTH', 'Art', 'Total', 'Average', 'Grade'])
        self.assertEqual(ws.cell(row=4, column=4).value, 90.0)
        self.assertIsNone(ws.cell(row=4, column=5).value)


# ============ Tasks ============

class PublishTaskTest(ResultsFixtureMixin, TestCase):

    def test_publishes(self):
        result = publish_class_term_results.apply(args=[self.jss1_t1.pk]).get()
        self.assertTrue(result['success'])
        self.assertFalse(Assessment.objects.filter(is_published=False).exists())

    def test_missing_class_term(self):
        result = publish_class_term_results.apply(args=[999999]).get()
        self.assertEqual(result, {'success': False, 'message': 'Class term not found'})

    def test_retries_on_database_error(self):
        with mock.patch('gradebook.tasks.auto_publish_class_term_results',
                        side_effect=OperationalError('database is locked')), \
                mock.patch.object(publish_class_term_results, 'retry', side_effect=Retry()) as retry:
            with self.assertRaises(Retry):
                publish_class_term_results(self.jss1_t1.pk)
        self.assertTrue(retry.called)


# ============ Management command ============

class FixDuplicateEnrollmentsTest(ResultsFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.jss2_t1 = ClassTerm.objects.create(class_assigned=self.jss2, term=self.term1)
        self.duplicate = StudentClassTerm.objects.create(student=self.ada, class_term=self.jss2_t1)

    def run_command(self, *args):
        out = StringIO()
        call_command('fix_duplicate_enrollments', *args, stdout=out)
        return out.getvalue()

    def test_report_only(self):
        output = self.run_command()
        self.assertIn('[DRY RUN]', output)
        self.assertTrue(StudentClassTerm.objects.filter(pk=self.duplicate.pk).exists())

    def test_fix_needs_confirm(self):
        output = self.run_command('--fix')
        self.assertIn('--fix --confirm', output)
        self.assertTrue(StudentClassTerm.objects.filter(pk=self.duplicate.pk).exists())

    def test_fix_keeps_earliest(self):
        self.run_command('--fix', '--confirm')
        self.assertFalse(StudentClassTerm.objects.filter(pk=self.duplicate.pk).exists())
        self.assertTrue(StudentClassTerm.objects.filter(student=self.ada, class_term=self.jss1_t1).exists())

    def test_skips_enrolment_with_assessments(self):
        Assessment.objects.filter(student_class_term__class_term=self.jss1_t1, student=self.ada).delete()
        self.score(self.ada, self.math, 50, class_term=self.jss2_t1)
        output = self.run_command('--fix', '--confirm')
        self.assertIn('skip', output)
        self.assertTrue(StudentClassTerm.objects.filter(pk=self.duplicate.pk).exists())

    def test_no_duplicates(self):
        self.duplicate.delete()
        self.assertIn('No duplicate enrolments found', self.run_command())
