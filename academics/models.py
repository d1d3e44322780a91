from django.db import models
from django.utils.translation import gettext_lazy as _


class Class(models.Model):
    """
    Represents a class/classroom grouping of students, e.g. "Primary 5A".
    Students are enrolled into a class for a specific term through ClassTerm.
    """
    class Level(models.TextChoices):
        NURSERY = 'nursery', _('Nursery')
        PRIMARY = 'primary', _('Primary')
        JSS = 'jss', _('Junior Secondary')
        SSS = 'sss', _('Senior Secondary')

    school = models.ForeignKey(
        'schools.School',
        on_delete=models.CASCADE,
        related_name='classes'
    )
    name = models.CharField(
        max_length=50,
        help_text="e.g., Primary 5A, JSS 2B"
    )
    level = models.CharField(
        max_length=10,
        choices=Level.choices,
        default=Level.PRIMARY
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['level', 'name']
        verbose_name = "Class"
        verbose_name_plural = "Classes"
        unique_together = ['school', 'name']

    def __str__(self):
        return self.name


class Subject(models.Model):
    """
    Represents a subject taught at the school.
    """
    school = models.ForeignKey(
        'schools.School',
        on_delete=models.CASCADE,
        related_name='subjects'
    )
    name = models.CharField(
        max_length=100,
        help_text="e.g., Mathematics, English Language, Basic Science"
    )
    code = models.CharField(
        max_length=20,
        blank=True,
        help_text="Optional subject code"
    )
    is_core = models.BooleanField(
        default=True,
        help_text="Core subjects are mandatory"
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-is_core', 'name']
        verbose_name = "Subject"
        verbose_name_plural = "Subjects"

    def __str__(self):
        return self.name


class ClassTerm(models.Model):
    """
    A class running in a specific term. This is the unit students are
    enrolled into and that results are computed for.
    """
    class_assigned = models.ForeignKey(
        Class,
        on_delete=models.CASCADE,
        related_name='class_terms'
    )
    term = models.ForeignKey(
        'core.Term',
        on_delete=models.CASCADE,
        related_name='class_terms'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['term', 'class_assigned__name']
        verbose_name = "Class Term"
        verbose_name_plural = "Class Terms"
        unique_together = ['class_assigned', 'term']

    def __str__(self):
        return f"{self.class_assigned.name} - {self.term.name}"

    @property
    def school_id(self):
        return self.class_assigned.school_id


class ClassSubject(models.Model):
    """
    Links a ClassTerm to a Subject it offers.
    Example: 'Mathematics' is offered to 'Primary 5A' in First Term.
    """
    class_term = models.ForeignKey(
        ClassTerm,
        on_delete=models.CASCADE,
        related_name='class_subjects'
    )
    subject = models.ForeignKey(
        Subject,
        on_delete=models.CASCADE,
        related_name='class_allocations'
    )

    class Meta:
        unique_together = ['class_term', 'subject']
        verbose_name = "Subject Allocation"
        verbose_name_plural = "Subject Allocations"

    def __str__(self):
        return f"{self.subject.name} - {self.class_term}"
