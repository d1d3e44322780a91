from django.conf import settings
import django.core.validators
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('schools', '0001_initial'),
        ('core', '0001_initial'),
        ('academics', '0001_initial'),
        ('students', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='GradingSystem',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(help_text='Name of the grading system (e.g., WAEC, Custom)', max_length=100)),
                ('description', models.TextField(blank=True)),
                ('pass_mark', models.DecimalField(decimal_places=2, default=40, help_text='Minimum subject total that counts as a pass', max_digits=5, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)])),
                ('is_default', models.BooleanField(default=False, help_text="The grading system used for this school's results")),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('school', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='grading_systems', to='schools.school')),
            ],
            options={
                'verbose_name': 'Grading System',
                'verbose_name_plural': 'Grading Systems',
                'db_table': 'grading_system',
                'ordering': ['school', 'name'],
                'unique_together': {('school', 'name')},
            },
        ),
        migrations.CreateModel(
            name='GradeLevel',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('min_score', models.DecimalField(decimal_places=2, help_text='Minimum score for this grade (inclusive)', max_digits=5, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)])),
                ('max_score', models.DecimalField(decimal_places=2, help_text='Maximum score for this grade (inclusive)', max_digits=5, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)])),
                ('grade', models.CharField(help_text='Grade label (e.g., A1, B2, F)', max_length=10)),
                ('remark', models.CharField(blank=True, help_text='e.g., Excellent, Fail', max_length=50)),
                ('grading_system', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='levels', to='gradebook.gradingsystem')),
            ],
            options={
                'verbose_name': 'Grade Level',
                'verbose_name_plural': 'Grade Levels',
                'db_table': 'grade_level',
                'ordering': ['grading_system', '-min_score'],
                'unique_together': {('grading_system', 'grade')},
            },
        ),
        migrations.CreateModel(
            name='Assessment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('ca1', models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True, validators=[django.core.validators.MinValueValidator(0)])),
                ('ca2', models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True, validators=[django.core.validators.MinValueValidator(0)])),
                ('ca3', models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True, validators=[django.core.validators.MinValueValidator(0)])),
                ('exam', models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True, validators=[django.core.validators.MinValueValidator(0)])),
                ('is_absent', models.BooleanField(default=False)),
                ('is_exempt', models.BooleanField(default=False)),
                ('is_published', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='assessments', to='students.student')),
                ('subject', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='assessments', to='academics.subject')),
                ('term', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='assessments', to='core.term')),
                ('student_class_term', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='assessments', to='students.studentclassterm')),
            ],
            options={
                'verbose_name': 'Assessment',
                'verbose_name_plural': 'Assessments',
                'db_table': 'assessment',
                'ordering': ['term', 'subject', 'student'],
                'unique_together': {('student', 'subject', 'term')},
                'indexes': [
                    models.Index(fields=['student', 'term'], name='assessment_student_1d6a4c_idx'),
                    models.Index(fields=['subject', 'term'], name='assessment_subject_8f0b2e_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StudentTransition',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('transition_type', models.CharField(choices=[('PROMOTION', 'Promotion'), ('TRANSFER', 'Transfer'), ('WITHDRAWAL', 'Withdrawal')], max_length=12)),
                ('transition_date', models.DateTimeField(default=django.utils.timezone.now)),
                ('notes', models.TextField(blank=True)),
                ('created_by', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='student_transitions', to=settings.AUTH_USER_MODEL)),
                ('from_class_term', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transitions_out', to='academics.classterm')),
                ('to_class_term', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transitions_in', to='academics.classterm')),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transitions', to='students.student')),
            ],
            options={
                'verbose_name': 'Student Transition',
                'verbose_name_plural': 'Student Transitions',
                'db_table': 'student_transition',
                'ordering': ['-transition_date'],
                'indexes': [
                    models.Index(fields=['student', '-transition_date'], name='student_tra_student_4c2e9a_idx'),
                ],
            },
        ),
    ]
