from datetime import date

from django.db import IntegrityError
from django.test import TestCase

from core.models import AcademicYear, Term
from schools.models import School


class AcademicYearModelTests(TestCase):
    """Tests for the AcademicYear model."""

    def setUp(self):
        self.school = School.objects.create(name='Bright Future Academy')

    def _create_year(self, **kwargs):
        defaults = {
            'school': self.school,
            'name': '2024/2025 Academic Year',
            'start_date': date(2024, 9, 1),
            'end_date': date(2025, 7, 31),
            'is_current': False,
        }
        defaults.update(kwargs)
        return AcademicYear.objects.create(**defaults)

    def test_create_academic_year(self):
        ay = self._create_year()
        self.assertEqual(str(ay), '2024/2025 Academic Year')

    def test_only_one_current(self):
        ay1 = self._create_year(is_current=True)
        ay2 = self._create_year(
            name='2025/2026',
            start_date=date(2025, 9, 1),
            end_date=date(2026, 7, 31),
            is_current=True,
        )
        ay1.refresh_from_db()
        self.assertFalse(ay1.is_current)
        self.assertTrue(ay2.is_current)

    def test_current_is_per_school(self):
        """Making a year current leaves other schools' current year alone."""
        other = School.objects.create(name='Other School')
        theirs = self._create_year(school=other, is_current=True)
        self._create_year(is_current=True)
        theirs.refresh_from_db()
        self.assertTrue(theirs.is_current)

    def test_get_current(self):
        self._create_year(is_current=True)
        current = AcademicYear.get_current(self.school)
        self.assertIsNotNone(current)
        self.assertTrue(current.is_current)

    def test_get_current_none(self):
        self.assertIsNone(AcademicYear.get_current(self.school))


class TermModelTests(TestCase):
    """Tests for the Term model."""

    def setUp(self):
        self.school = School.objects.create(name='Bright Future Academy')
        self.ay = AcademicYear.objects.create(
            school=self.school,
            name='2024/2025',
            start_date=date(2024, 9, 1),
            end_date=date(2025, 7, 31),
            is_current=True,
        )

    def _create_term(self, **kwargs):
        defaults = {
            'academic_year': self.ay,
            'name': 'First Term',
            'term_number': 1,
            'start_date': date(2024, 9, 1),
            'end_date': date(2024, 12, 20),
            'is_current': False,
        }
        defaults.update(kwargs)
        return Term.objects.create(**defaults)

    def test_create_term(self):
        term = self._create_term()
        self.assertEqual(str(term), 'First Term - 2024/2025')
        self.assertEqual(term.school_id, self.school.pk)

    def test_only_one_current_term(self):
        t1 = self._create_term(is_current=True)
        t2 = self._create_term(
            name='Second Term',
            term_number=2,
            start_date=date(2025, 1, 6),
            end_date=date(2025, 4, 15),
            is_current=True,
        )
        t1.refresh_from_db()
        self.assertFalse(t1.is_current)
        self.assertTrue(t2.is_current)

    def test_get_current(self):
        self._create_term(is_current=True)
        current = Term.get_current(self.school)
        self.assertIsNotNone(current)
        self.assertTrue(current.is_current)

    def test_unique_together_academic_year_term_number(self):
        self._create_term(term_number=1)
        with self.assertRaises(IntegrityError):
            self._create_term(name='Another First Term', term_number=1)
