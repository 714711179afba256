import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='TextSession',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=[('waiting_for_doctor', 'Waiting for doctor'), ('active', 'Active'), ('expired', 'Expired'), ('ended', 'Ended')], default='waiting_for_doctor', max_length=20)),
                ('reason', models.TextField(blank=True, default='')),
                ('started_at', models.DateTimeField()),
                ('last_activity_at', models.DateTimeField()),
                ('doctor_response_deadline', models.DateTimeField(blank=True, null=True)),
                ('activated_at', models.DateTimeField(blank=True, null=True)),
                ('ended_at', models.DateTimeField(blank=True, null=True)),
                ('end_reason', models.CharField(blank=True, choices=[('manual', 'Ended manually'), ('auto_time', 'Time allowance used up'), ('doctor_no_response', 'Doctor did not respond')], max_length=20, null=True)),
                ('sessions_remaining_before_start', models.PositiveIntegerField()),
                ('sessions_used', models.PositiveIntegerField(default=0)),
                ('auto_deductions_processed', models.PositiveIntegerField(default=0)),
                ('sessions_debited', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('doctor', models.ForeignKey(limit_choices_to={'role': 'doctor'}, on_delete=django.db.models.deletion.CASCADE, related_name='doctor_text_sessions', to=settings.AUTH_USER_MODEL)),
                ('patient', models.ForeignKey(limit_choices_to={'role': 'patient'}, on_delete=django.db.models.deletion.CASCADE, related_name='patient_text_sessions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-started_at'],
                'indexes': [models.Index(fields=['status', 'doctor_response_deadline'], name='text_session_status_idx')],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('sessions_used__lte', models.F('sessions_remaining_before_start'))), name='text_session_used_within_snapshot'),
                    models.CheckConstraint(condition=models.Q(('auto_deductions_processed__lte', models.F('sessions_remaining_before_start'))), name='text_session_auto_within_snapshot'),
                    models.CheckConstraint(condition=models.Q(('sessions_debited__lte', models.F('sessions_used'))), name='text_session_debited_within_used'),
                ],
            },
        ),
    ]
