import uuid
from django.conf import settings
from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator
from django.core.exceptions import ValidationError
from django.utils import timezone

from .grading import GradeBand, GradingScheme
from .ranking import ScoreRecord


class GradingSystem(models.Model):
    """A school's grading system: a set of grade levels plus the pass mark."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    school = models.ForeignKey(
        'schools.School',
        on_delete=models.CASCADE,
        related_name='grading_systems',
        db_index=True
    )
    name = models.CharField(
        max_length=100,
        help_text='Name of the grading system (e.g., WAEC, Custom)'
    )
    description = models.TextField(blank=True)
    pass_mark = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=40,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text='Minimum subject total that counts as a pass'
    )
    is_default = models.BooleanField(
        default=False,
        help_text='The grading system used for this school\'s results'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        # Only one default grading system per school
        if self.is_default:
            GradingSystem.objects.filter(
                school_id=self.school_id, is_default=True
            ).exclude(pk=self.pk).update(is_default=False)
        super().save(*args, **kwargs)

    def to_scheme(self):
        """
        Build the immutable GradingScheme used by the results engine.
        Raises InvalidConfiguration when the system has no levels.
        """
        return GradingScheme(
            bands=tuple(
                GradeBand(level.min_score, level.max_score, level.grade, level.remark)
                for level in self.levels.all()
            ),
            pass_mark=self.pass_mark,
        )

    class Meta:
        db_table = 'grading_system'
        ordering = ['school', 'name']
        verbose_name = 'Grading System'
        verbose_name_plural = 'Grading Systems'
        unique_together = ['school', 'name']


class GradeLevel(models.Model):
    """One grade band within a grading system (e.g., A1 = 80-100, Excellent)."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    grading_system = models.ForeignKey(
        GradingSystem,
        on_delete=models.CASCADE,
        related_name='levels',
        db_index=True
    )
    min_score = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text='Minimum score for this grade (inclusive)'
    )
    max_score = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text='Maximum score for this grade (inclusive)'
    )
    grade = models.CharField(max_length=10, help_text='Grade label (e.g., A1, B2, F)')
    remark = models.CharField(max_length=50, blank=True, help_text='e.g., Excellent, Fail')

    def __str__(self):
        return f"{self.grade} ({self.min_score}-{self.max_score}) - {self.remark}"

    def clean(self):
        """Validate that min <= max and ranges don't overlap"""
        if self.min_score > self.max_score:
            raise ValidationError('Minimum score cannot be greater than maximum score')

        overlapping = GradeLevel.objects.filter(
            grading_system=self.grading_system
        ).exclude(pk=self.pk).filter(
            min_score__lte=self.max_score,
            max_score__gte=self.min_score
        )

        if overlapping.exists():
            raise ValidationError(
                f'Grade range overlaps with existing grade: {overlapping.first()}'
            )

    class Meta:
        db_table = 'grade_level'
        ordering = ['grading_system', '-min_score']
        verbose_name = 'Grade Level'
        verbose_name_plural = 'Grade Levels'
        unique_together = ['grading_system', 'grade']


class Assessment(models.Model):
    """
    A student's continuous assessments and exam score for one subject in a term.
    Components are conventionally out of 10/10/10/70 and may be left blank.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    student = models.ForeignKey(
        'students.Student',
        on_delete=models.CASCADE,
        related_name='assessments',
        db_index=True
    )
    subject = models.ForeignKey(
        'academics.Subject',
        on_delete=models.CASCADE,
        related_name='assessments',
        db_index=True
    )
    term = models.ForeignKey(
        'core.Term',
        on_delete=models.CASCADE,
        related_name='assessments',
        db_index=True
    )
    student_class_term = models.ForeignKey(
        'students.StudentClassTerm',
        on_delete=models.CASCADE,
        related_name='assessments'
    )

    ca1 = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True,
                              validators=[MinValueValidator(0)])
    ca2 = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True,
                              validators=[MinValueValidator(0)])
    ca3 = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True,
                              validators=[MinValueValidator(0)])
    exam = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True,
                               validators=[MinValueValidator(0)])

    is_absent = models.BooleanField(default=False)
    is_exempt = models.BooleanField(default=False)
    is_published = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.student} - {self.subject.name} ({self.term})"

    def to_score_record(self):
        return ScoreRecord(
            student_id=self.student_id,
            subject_id=self.subject_id,
            ca1=self.ca1,
            ca2=self.ca2,
            ca3=self.ca3,
            exam=self.exam,
            is_absent=self.is_absent,
            is_exempt=self.is_exempt,
        )

    @property
    def is_complete(self):
        """Absent, exempt, or all four components entered."""
        record = self.to_score_record()
        return not record.is_gradable or record.has_all_components

    class Meta:
        db_table = 'assessment'
        ordering = ['term', 'subject', 'student']
        verbose_name = 'Assessment'
        verbose_name_plural = 'Assessments'
        unique_together = ['student', 'subject', 'term']
        indexes = [
            models.Index(fields=['student', 'term'], name='assessment_student_1d6a4c_idx'),
            models.Index(fields=['subject', 'term'], name='assessment_subject_8f0b2e_idx'),
        ]


class StudentTransition(models.Model):
    """
    Audit record of a student moving from one class-term to another.
    Created once when the transition is executed and never changed afterwards.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class TransitionType(models.TextChoices):
        PROMOTION = 'PROMOTION', 'Promotion'
        TRANSFER = 'TRANSFER', 'Transfer'
        WITHDRAWAL = 'WITHDRAWAL', 'Withdrawal'

    student = models.ForeignKey(
        'students.Student',
        on_delete=models.PROTECT,
        related_name='transitions'
    )
    from_class_term = models.ForeignKey(
        'academics.ClassTerm',
        on_delete=models.PROTECT,
        related_name='transitions_out'
    )
    to_class_term = models.ForeignKey(
        'academics.ClassTerm',
        on_delete=models.PROTECT,
        related_name='transitions_in'
    )
    transition_type = models.CharField(max_length=12, choices=TransitionType.choices)
    transition_date = models.DateTimeField(default=timezone.now)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='student_transitions'
    )

    def __str__(self):
        return f"{self.get_transition_type_display()}: {self.student} ({self.transition_date:%Y-%m-%d})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError('Transition records cannot be modified')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError('Transition records cannot be deleted')

    class Meta:
        db_table = 'student_transition'
        ordering = ['-transition_date']
        verbose_name = 'Student Transition'
        verbose_name_plural = 'Student Transitions'
        indexes = [
            models.Index(fields=['student', '-transition_date'], name='student_tra_student_4c2e9a_idx'),
        ]
