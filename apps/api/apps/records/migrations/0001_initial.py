import uuid

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models

import apps.records.validators


def soft_delete_fields():
    return [
        ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
        ('is_deleted', models.BooleanField(default=False)),
        ('deleted_at', models.DateTimeField(blank=True, null=True)),
        ('created_at', models.DateTimeField(auto_now_add=True)),
        ('updated_at', models.DateTimeField(auto_now=True)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Specialty',
            fields=soft_delete_fields() + [
                ('name', models.CharField(max_length=100)),
                ('description', models.TextField(blank=True, default='')),
            ],
            options={
                'verbose_name': 'Specialty',
                'verbose_name_plural': 'Specialties',
                'db_table': 'specialty',
            },
        ),
        migrations.CreateModel(
            name='Diagnosis',
            fields=soft_delete_fields() + [
                ('name', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True, default='')),
            ],
            options={
                'verbose_name': 'Diagnosis',
                'verbose_name_plural': 'Diagnoses',
                'db_table': 'diagnosis',
            },
        ),
        migrations.CreateModel(
            name='Doctor',
            fields=soft_delete_fields() + [
                ('name', models.CharField(max_length=255)),
                ('unique_id_number', models.CharField(max_length=20, validators=[apps.records.validators.unique_id_number_validator])),
                ('is_general_practitioner', models.BooleanField(default=False)),
                ('is_approved', models.BooleanField(default=True)),
                ('image_url', models.URLField(blank=True, max_length=500, null=True)),
                ('subject_id', models.CharField(blank=True, max_length=64, null=True)),
                ('specialties', models.ManyToManyField(blank=True, related_name='doctors', to='records.specialty')),
            ],
            options={
                'verbose_name': 'Doctor',
                'verbose_name_plural': 'Doctors',
                'db_table': 'doctor',
                'indexes': [models.Index(fields=['is_general_practitioner'], name='idx_doctor_gp')],
            },
        ),
        migrations.CreateModel(
            name='Patient',
            fields=soft_delete_fields() + [
                ('name', models.CharField(max_length=255)),
                ('egn', models.CharField(max_length=10, validators=[apps.records.validators.validate_egn])),
                ('last_insurance_payment_date', models.DateField(blank=True, null=True)),
                ('subject_id', models.CharField(blank=True, max_length=64, null=True)),
                ('general_practitioner', models.ForeignKey(blank=True, limit_choices_to={'is_general_practitioner': True}, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='gp_patients', to='records.doctor')),
            ],
            options={
                'verbose_name': 'Patient',
                'verbose_name_plural': 'Patients',
                'db_table': 'patient',
            },
        ),
        migrations.CreateModel(
            name='Visit',
            fields=soft_delete_fields() + [
                ('visit_date', models.DateField()),
                ('visit_time', models.TimeField(validators=[apps.records.validators.validate_visit_time])),
                ('status', models.CharField(choices=[('SCHEDULED', 'Scheduled'), ('COMPLETED', 'Completed'), ('CANCELLED', 'Cancelled')], default='SCHEDULED', max_length=20)),
                ('notes', models.TextField(blank=True, default='')),
                ('diagnosis', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='visits', to='records.diagnosis')),
                ('doctor', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='visits', to='records.doctor')),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='visits', to='records.patient')),
            ],
            options={
                'verbose_name': 'Visit',
                'verbose_name_plural': 'Visits',
                'db_table': 'visit',
                'ordering': ['visit_date', 'visit_time'],
                'indexes': [
                    models.Index(fields=['visit_date'], name='idx_visit_date'),
                    models.Index(fields=['doctor', 'visit_date'], name='idx_visit_doctor_date'),
                    models.Index(fields=['status'], name='idx_visit_status'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SickLeave',
            fields=soft_delete_fields() + [
                ('start_date', models.DateField()),
                ('duration_days', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('visit', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sick_leaves', to='records.visit')),
            ],
            options={
                'verbose_name': 'Sick Leave',
                'verbose_name_plural': 'Sick Leaves',
                'db_table': 'sick_leave',
                'indexes': [models.Index(fields=['start_date'], name='idx_sick_leave_start')],
            },
        ),
        migrations.CreateModel(
            name='Treatment',
            fields=soft_delete_fields() + [
                ('description', models.TextField(blank=True, default='')),
                ('visit', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='treatments', to='records.visit')),
            ],
            options={
                'verbose_name': 'Treatment',
                'verbose_name_plural': 'Treatments',
                'db_table': 'treatment',
            },
        ),
        migrations.CreateModel(
            name='Medicine',
            fields=soft_delete_fields() + [
                ('name', models.CharField(max_length=255)),
                ('dosage', models.CharField(max_length=50)),
                ('frequency', models.CharField(max_length=50)),
                ('position', models.PositiveIntegerField(default=0)),
                ('treatment', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='medicines', to='records.treatment')),
            ],
            options={
                'verbose_name': 'Medicine',
                'verbose_name_plural': 'Medicines',
                'db_table': 'medicine',
                'ordering': ['position', 'created_at'],
            },
        ),
        migrations.AddConstraint(
            model_name='specialty',
            constraint=models.UniqueConstraint(condition=models.Q(('is_deleted', False)), fields=('name',), name='uniq_specialty_name_alive'),
        ),
        migrations.AddConstraint(
            model_name='diagnosis',
            constraint=models.UniqueConstraint(condition=models.Q(('is_deleted', False)), fields=('name',), name='uniq_diagnosis_name_alive'),
        ),
        migrations.AddConstraint(
            model_name='doctor',
            constraint=models.UniqueConstraint(condition=models.Q(('is_deleted', False)), fields=('unique_id_number',), name='uniq_doctor_id_number_alive'),
        ),
        migrations.AddConstraint(
            model_name='doctor',
            constraint=models.UniqueConstraint(condition=models.Q(('is_deleted', False), ('subject_id__isnull', False)), fields=('subject_id',), name='uniq_doctor_subject_alive'),
        ),
        migrations.AddConstraint(
            model_name='patient',
            constraint=models.UniqueConstraint(condition=models.Q(('is_deleted', False)), fields=('egn',), name='uniq_patient_egn_alive'),
        ),
        migrations.AddConstraint(
            model_name='patient',
            constraint=models.UniqueConstraint(condition=models.Q(('is_deleted', False), ('subject_id__isnull', False)), fields=('subject_id',), name='uniq_patient_subject_alive'),
        ),
        migrations.AddConstraint(
            model_name='visit',
            constraint=models.UniqueConstraint(condition=models.Q(('is_deleted', False), models.Q(('status', 'CANCELLED'), _negated=True)), fields=('doctor', 'visit_date', 'visit_time'), name='uniq_visit_doctor_slot_active'),
        ),
        migrations.AddConstraint(
            model_name='sickleave',
            constraint=models.UniqueConstraint(condition=models.Q(('is_deleted', False)), fields=('visit',), name='uniq_sick_leave_visit_alive'),
        ),
        migrations.AddConstraint(
            model_name='treatment',
            constraint=models.UniqueConstraint(condition=models.Q(('is_deleted', False)), fields=('visit',), name='uniq_treatment_visit_alive'),
        ),
    ]
