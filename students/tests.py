from datetime import date

from django.db import IntegrityError
from django.test import TestCase

from academics.models import Class, ClassTerm
from core.models import AcademicYear, Term
from schools.models import School
from students.models import Student, StudentClassTerm


class StudentModelTests(TestCase):
    """Tests for Student and class enrolment."""

    def setUp(self):
        self.school = School.objects.create(name='Bright Future Academy')
        ay = AcademicYear.objects.create(
            school=self.school, name='2024/2025',
            start_date=date(2024, 9, 1), end_date=date(2025, 7, 31),
        )
        term = Term.objects.create(
            academic_year=ay, name='First Term', term_number=1,
            start_date=date(2024, 9, 1), end_date=date(2024, 12, 20),
        )
        klass = Class.objects.create(school=self.school, name='Primary 5A')
        self.class_term = ClassTerm.objects.create(class_assigned=klass, term=term)
        self.student = Student.objects.create(
            school=self.school,
            first_name='Ngozi',
            other_names='Ada',
            last_name='Eze',
            admission_number='PRI/2024/001',
        )

    def test_full_name(self):
        self.assertEqual(self.student.full_name, 'Ngozi Ada Eze')
        self.assertEqual(str(self.student), 'Ngozi Ada Eze (PRI/2024/001)')

    def test_defaults(self):
        self.assertEqual(self.student.status, Student.Status.ACTIVE)
        self.assertEqual(self.student.gender, Student.Gender.OTHER)

    def test_one_enrolment_per_class_term(self):
        StudentClassTerm.objects.create(student=self.student, class_term=self.class_term)
        with self.assertRaises(IntegrityError):
            StudentClassTerm.objects.create(student=self.student, class_term=self.class_term)

    def test_enrolment_str(self):
        enrolment = StudentClassTerm.objects.create(student=self.student, class_term=self.class_term)
        self.assertEqual(str(enrolment), 'Ngozi Ada Eze - Primary 5A - First Term')
