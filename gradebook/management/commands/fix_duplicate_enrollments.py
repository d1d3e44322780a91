"""
Management command to find and remove duplicate class enrolments.

A student should be enrolled in one class per term. Duplicates (the same
student in two class-terms of one term) make positions and broadsheets
count the student twice.

Usage:
    python manage.py fix_duplicate_enrollments
    python manage.py fix_duplicate_enrollments --term 4
    python manage.py fix_duplicate_enrollments --fix --confirm
"""
import logging

from django.core.management.base import BaseCommand
from django.db import transaction
from django.db.models import Count

from students.models import StudentClassTerm

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Report (and optionally remove) students enrolled in more than one class in a term'

    def add_arguments(self, parser):
        parser.add_argument(
            '--term',
            type=int,
            help='Only check this term id',
        )
        parser.add_argument(
            '--fix',
            action='store_true',
            help='Remove duplicate enrolments, keeping the earliest one',
        )
        parser.add_argument(
            '--confirm',
            action='store_true',
            help='Required with --fix; without it nothing is deleted',
        )

    def handle(self, *args, **options):
        fix = options['fix']
        confirmed = fix and options['confirm']
        prefix = '' if confirmed else '[DRY RUN] '

        if fix and not options['confirm']:
            logger.warning("fix_duplicate_enrollments: --fix given without --confirm, nothing deleted")
            self.stdout.write(self.style.WARNING(
                'Deleting enrolments is irreversible. Re-run with --fix --confirm to apply.'
            ))

        enrolments = StudentClassTerm.objects.all()
        if options['term']:
            enrolments = enrolments.filter(class_term__term_id=options['term'])

        duplicates = enrolments.values(
            'student_id', 'class_term__term_id'
        ).annotate(count=Count('id')).filter(count__gt=1).order_by('student_id')

        if not duplicates:
            self.stdout.write(self.style.SUCCESS('No duplicate enrolments found.'))
            return

        total_removed = 0
        total_skipped = 0

        for dup in duplicates:
            rows = list(StudentClassTerm.objects.filter(
                student_id=dup['student_id'],
                class_term__term_id=dup['class_term__term_id'],
            ).select_related('student', 'class_term__class_assigned').annotate(
                assessment_count=Count('assessments')
            ).order_by('created_at', 'pk'))

            keep, extra = rows[0], rows[1:]
            self.stdout.write(
                f'\n{keep.student.full_name} ({keep.student.admission_number}): '
                f'{len(rows)} enrolments in term {dup["class_term__term_id"]}'
            )
            self.stdout.write(f'  keep: {keep.class_term.class_assigned.name} (#{keep.pk})')

            for enrolment in extra:
                label = f'{enrolment.class_term.class_assigned.name} (#{enrolment.pk})'
                if enrolment.assessment_count:
                    total_skipped += 1
                    self.stdout.write(self.style.WARNING(
                        f'  skip: {label} has {enrolment.assessment_count} assessment(s)'
                    ))
                    continue

                self.stdout.write(f'  {prefix}remove: {label}')
                if confirmed:
                    with transaction.atomic():
                        enrolment.delete()
                    logger.info(
                        f"Removed duplicate enrolment {label} of student {enrolment.student_id}"
                    )
                total_removed += 1

        # Summary
        self.stdout.write('')
        self.stdout.write(
            self.style.SUCCESS(
                f'{prefix}{len(duplicates)} student(s) with duplicates: '
                f'{total_removed} enrolment(s) removed, {total_skipped} skipped'
            )
        )
