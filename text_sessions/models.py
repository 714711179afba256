# text_sessions/models.py
import math
from datetime import timedelta

from django.conf import settings
from django.db import models
from django.db.models import F, Q

from .exceptions import InvalidTransition


class TextSessionStatus(models.TextChoices):
    WAITING_FOR_DOCTOR = 'waiting_for_doctor', 'Waiting for doctor'
    ACTIVE = 'active', 'Active'
    EXPIRED = 'expired', 'Expired'
    ENDED = 'ended', 'Ended'


class EndReason(models.TextChoices):
    MANUAL = 'manual', 'Ended manually'
    AUTO_TIME = 'auto_time', 'Time allowance used up'
    DOCTOR_NO_RESPONSE = 'doctor_no_response', 'Doctor did not respond'


OPEN_STATUSES = (TextSessionStatus.WAITING_FOR_DOCTOR, TextSessionStatus.ACTIVE)
TERMINAL_STATUSES = (TextSessionStatus.EXPIRED, TextSessionStatus.ENDED)

ALLOWED_TRANSITIONS = {
    TextSessionStatus.WAITING_FOR_DOCTOR: frozenset({
        TextSessionStatus.ACTIVE,
        TextSessionStatus.EXPIRED,
        TextSessionStatus.ENDED,
    }),
    TextSessionStatus.ACTIVE: frozenset({TextSessionStatus.ENDED}),
    TextSessionStatus.EXPIRED: frozenset(),
    TextSessionStatus.ENDED: frozenset(),
}


def interval_seconds():
    """Length of one billed session unit"""
    return settings.TEXT_SESSION_INTERVAL_MINUTES * 60


class TextSessionQuerySet(models.QuerySet):
    def open(self):
        return self.filter(status__in=OPEN_STATUSES)

    def active(self):
        return self.filter(status=TextSessionStatus.ACTIVE)

    def for_participant(self, user):
        return self.filter(Q(patient=user) | Q(doctor=user))

    def overdue_waiting(self, now):
        """Waiting sessions whose doctor response deadline has passed"""
        return self.filter(
            status=TextSessionStatus.WAITING_FOR_DOCTOR,
            doctor_response_deadline__isnull=False,
            doctor_response_deadline__lte=now
        )


class TextSession(models.Model):
    """
    A live text consultation between a patient and a doctor.

    The patient's available credit is snapshotted at creation; every 10 minutes
    of elapsed time (counted from ``started_at``) consumes one unit of it.
    """
    patient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='patient_text_sessions',
        limit_choices_to={'role': 'patient'}
    )
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='doctor_text_sessions',
        limit_choices_to={'role': 'doctor'}
    )
    status = models.CharField(
        max_length=20,
        choices=TextSessionStatus.choices,
        default=TextSessionStatus.WAITING_FOR_DOCTOR
    )
    reason = models.TextField(blank=True, default='')

    started_at = models.DateTimeField()
    last_activity_at = models.DateTimeField()
    doctor_response_deadline = models.DateTimeField(blank=True, null=True)
    activated_at = models.DateTimeField(blank=True, null=True)
    ended_at = models.DateTimeField(blank=True, null=True)
    end_reason = models.CharField(max_length=20, choices=EndReason.choices, blank=True, null=True)

    sessions_remaining_before_start = models.PositiveIntegerField()
    sessions_used = models.PositiveIntegerField(default=0)
    auto_deductions_processed = models.PositiveIntegerField(default=0)
    # Units already taken from the patient's subscription
    sessions_debited = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TextSessionQuerySet.as_manager()

    class Meta:
        ordering = ['-started_at']
        indexes = [
            models.Index(fields=['status', 'doctor_response_deadline'], name='text_session_status_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(sessions_used__lte=F('sessions_remaining_before_start')),
                name='text_session_used_within_snapshot',
            ),
            models.CheckConstraint(
                condition=Q(auto_deductions_processed__lte=F('sessions_remaining_before_start')),
                name='text_session_auto_within_snapshot',
            ),
            models.CheckConstraint(
                condition=Q(sessions_debited__lte=F('sessions_used')),
                name='text_session_debited_within_used',
            ),
        ]

    def __str__(self):
        return f"Text session {self.pk}: {self.patient.username} with {self.doctor.username} ({self.status})"

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    @property
    def is_open(self):
        return self.status in OPEN_STATUSES

    def can_transition_to(self, status):
        return status in ALLOWED_TRANSITIONS[TextSessionStatus(self.status)]

    def transition_to(self, status, at):
        """
        Move to ``status`` at time ``at``, keeping the timestamp fields in step.

        Raises:
            InvalidTransition: if the transition table does not allow the change
        """
        if not self.can_transition_to(status):
            raise InvalidTransition(self.status, status)

        self.status = status
        self.last_activity_at = at
        if status == TextSessionStatus.ACTIVE:
            self.activated_at = at
            self.doctor_response_deadline = None
        elif status in TERMINAL_STATUSES:
            self.ended_at = at

    # ----- time accounting -----

    def total_allowed_minutes(self):
        return self.sessions_remaining_before_start * settings.TEXT_SESSION_INTERVAL_MINUTES

    def elapsed_seconds(self, now):
        """
        Billable time in seconds. Sessions that never became active accrue
        nothing; otherwise time runs from ``started_at`` until ``ended_at`` (or
        ``now`` while open). Clock skew is clamped to zero.
        """
        if self.activated_at is None:
            return 0.0
        end = self.ended_at or now
        return max(0.0, (end - self.started_at).total_seconds())

    def elapsed_minutes(self, now):
        return self.elapsed_seconds(now) / 60

    def completed_intervals(self, now):
        return int(self.elapsed_seconds(now) // interval_seconds())

    def started_intervals(self, now):
        return math.ceil(self.elapsed_seconds(now) / interval_seconds())

    def owed_intervals(self, is_manual, now):
        """Units owed at settlement: partial intervals count on manual end only"""
        if is_manual:
            return self.started_intervals(now)
        return self.completed_intervals(now)

    def remaining_seconds(self, now):
        return max(0.0, self.total_allowed_minutes() * 60 - self.elapsed_seconds(now))

    def remaining_time_minutes(self, now):
        return int(self.remaining_seconds(now) // 60)

    def remaining_sessions(self, now):
        return max(0, self.sessions_remaining_before_start - self.completed_intervals(now))

    def allowance_ends_at(self):
        """Moment the snapshotted credit is used up"""
        return self.started_at + timedelta(minutes=self.total_allowed_minutes())

    def next_deduction_at(self, now):
        """
        When the next interval completes and is billed, or None if the session
        is not running or has no interval left in its allowance.
        """
        if self.status != TextSessionStatus.ACTIVE or self.activated_at is None:
            return None
        upcoming = self.completed_intervals(now) + 1
        if upcoming > self.sessions_remaining_before_start:
            return None
        return self.started_at + timedelta(seconds=upcoming * interval_seconds())

    def seconds_until_next_deduction(self, now):
        next_at = self.next_deduction_at(now)
        if next_at is None:
            return None
        return max(0, math.ceil((next_at - now).total_seconds()))

    def has_run_out_of_time(self, now):
        return (
            self.status == TextSessionStatus.ACTIVE
            and self.elapsed_seconds(now) >= self.total_allowed_minutes() * 60
        )

    def response_deadline_for(self, first_message_at):
        return first_message_at + timedelta(seconds=settings.TEXT_SESSION_DOCTOR_RESPONSE_SECONDS)

    def response_seconds_remaining(self, now):
        """Seconds left for the doctor to reply, or None if no deadline runs"""
        if self.doctor_response_deadline is None:
            return None
        return max(0, int((self.doctor_response_deadline - now).total_seconds()))

    def is_response_overdue(self, now):
        return (
            self.status == TextSessionStatus.WAITING_FOR_DOCTOR
            and self.doctor_response_deadline is not None
            and now >= self.doctor_response_deadline
        )

    def has_outstanding_settlement(self):
        """
        True for a terminal session whose settlement left owed intervals
        unbilled or consumed units undebited from the patient.
        """
        if not self.is_terminal:
            return False
        owed = self.owed_intervals(self.end_reason == EndReason.MANUAL, self.ended_at)
        billable = min(owed, self.sessions_remaining_before_start)
        return self.sessions_used < billable or self.sessions_debited < self.sessions_used
