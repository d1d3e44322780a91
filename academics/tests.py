from datetime import date

from django.db import IntegrityError
from django.test import TestCase

from academics.models import Class, Subject, ClassTerm, ClassSubject
from core.models import AcademicYear, Term
from schools.models import School


class ClassTermModelTests(TestCase):
    """Tests for ClassTerm and its subject allocations."""

    def setUp(self):
        self.school = School.objects.create(name='Bright Future Academy')
        ay = AcademicYear.objects.create(
            school=self.school, name='2024/2025',
            start_date=date(2024, 9, 1), end_date=date(2025, 7, 31),
        )
        self.term = Term.objects.create(
            academic_year=ay, name='First Term', term_number=1,
            start_date=date(2024, 9, 1), end_date=date(2024, 12, 20),
        )
        self.klass = Class.objects.create(school=self.school, name='JSS 2B', level=Class.Level.JSS)
        self.class_term = ClassTerm.objects.create(class_assigned=self.klass, term=self.term)

    def test_str_and_school(self):
        self.assertEqual(str(self.class_term), 'JSS 2B - First Term')
        self.assertEqual(self.class_term.school_id, self.school.pk)

    def test_one_class_term_per_term(self):
        with self.assertRaises(IntegrityError):
            ClassTerm.objects.create(class_assigned=self.klass, term=self.term)

    def test_subject_allocated_once(self):
        subject = Subject.objects.create(school=self.school, name='Basic Science', code='BSC')
        ClassSubject.objects.create(class_term=self.class_term, subject=subject)
        self.assertEqual(list(self.class_term.class_subjects.values_list('subject__code', flat=True)), ['BSC'])
        with self.assertRaises(IntegrityError):
            ClassSubject.objects.create(class_term=self.class_term, subject=subject)
