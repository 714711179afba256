# text_sessions/services/lifecycle_service.py
"""
State transitions of a text session.

Every mutation runs under a row lock on the session. ``terminate`` is the only
way a session reaches a terminal status: manual end, status polling and the
expiration sweeper all call it, and it settles billing exactly once.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from django.db import transaction

from billing.models import Subscription
from ..clock import default_clock
from ..exceptions import InsufficientCredits, InvalidParticipant, SessionAlreadyOpen
from ..models import EndReason, TERMINAL_STATUSES, TextSession, TextSessionStatus
from ..signals import session_status_changed
from .billing_engine import BillingEngine

logger = logging.getLogger(__name__)

_LOCKED_FIELDS = (
    'status', 'last_activity_at', 'doctor_response_deadline', 'activated_at',
    'ended_at', 'end_reason', 'sessions_used', 'auto_deductions_processed',
    'sessions_debited', 'updated_at',
)


@dataclass
class SessionStatus:
    """What a polling client is told about a session"""
    status: str
    time_remaining: Optional[int]
    remaining_time_minutes: int
    remaining_sessions: int
    message: str
    next_deduction_at: Optional[datetime] = None
    seconds_until_next_deduction: Optional[int] = None

    def as_response(self):
        return {
            'status': self.status,
            'timeRemaining': self.time_remaining,
            'remainingTimeMinutes': self.remaining_time_minutes,
            'remainingSessions': self.remaining_sessions,
            'message': self.message,
            'nextDeductionAt': self.next_deduction_at.isoformat() if self.next_deduction_at else None,
            'timeUntilNextDeduction': self.seconds_until_next_deduction,
        }


def _sync(target, source):
    """Copy the state read under lock back onto the caller's instance"""
    if target is source:
        return
    for name in _LOCKED_FIELDS:
        setattr(target, name, getattr(source, name))


class SessionLifecycleController:
    """Entry points for everything that can happen to a text session"""

    def __init__(self, clock=None, billing_engine=None):
        self.clock = clock or default_clock
        self.billing = billing_engine or BillingEngine(clock=self.clock)

    def start(self, patient, doctor, reason=None):
        """
        Open a session waiting for the doctor.

        Raises:
            InvalidParticipant: doctor is not a doctor account, or patient and doctor are the same user
            InsufficientCredits: the patient has no text session units left
            SessionAlreadyOpen: an open session already exists for this patient and doctor
        """
        if doctor is None or doctor.role != 'doctor':
            raise InvalidParticipant("Doctor not found")
        if patient.pk == doctor.pk:
            raise InvalidParticipant("A doctor cannot open a text session with themselves")

        with transaction.atomic():
            # The subscription row lock serialises concurrent starts by one patient
            subscription = (
                Subscription.objects.select_for_update()
                .filter(patient=patient)
                .first()
            )
            if subscription is None or not subscription.is_active:
                raise InsufficientCredits(
                    "No active subscription found. Please subscribe to a plan to start a text session."
                )
            if subscription.text_sessions_remaining <= 0:
                raise InsufficientCredits(
                    "You have no text sessions remaining in your subscription."
                )

            existing = TextSession.objects.open().filter(patient=patient, doctor=doctor).first()
            if existing is not None:
                raise SessionAlreadyOpen(
                    "You already have an active session with this doctor", session=existing
                )

            now = self.clock.now()
            session = TextSession.objects.create(
                patient=patient,
                doctor=doctor,
                status=TextSessionStatus.WAITING_FOR_DOCTOR,
                reason=reason or '',
                started_at=now,
                last_activity_at=now,
                sessions_remaining_before_start=subscription.text_sessions_remaining,
            )

        logger.info(
            f"Text session {session.pk} started: patient {patient.pk}, doctor {doctor.pk}, "
            f"{session.sessions_remaining_before_start} session(s) available"
        )
        self._announce(session, None)
        return session

    def on_message(self, session, sender_role):
        """Dispatch a chat message event by the role of its sender"""
        if sender_role == 'patient':
            return self.on_first_patient_message(session)
        if sender_role == 'doctor':
            return self.on_doctor_message(session)
        raise ValueError(f"Unknown sender role: {sender_role}")

    def on_first_patient_message(self, session):
        """
        Start the doctor's response countdown on the patient's first message.
        Later patient messages only refresh the activity timestamp.
        """
        with transaction.atomic():
            locked = TextSession.objects.select_for_update().get(pk=session.pk)
            if locked.is_terminal:
                _sync(session, locked)
                return session

            now = self.clock.now()
            locked.last_activity_at = now
            fields = ['last_activity_at', 'updated_at']
            if (
                locked.status == TextSessionStatus.WAITING_FOR_DOCTOR
                and locked.doctor_response_deadline is None
            ):
                locked.doctor_response_deadline = locked.response_deadline_for(now)
                fields.append('doctor_response_deadline')
                logger.info(
                    f"Text session {locked.pk}: doctor must respond by "
                    f"{locked.doctor_response_deadline.isoformat()}"
                )
            locked.save(update_fields=fields)

        _sync(session, locked)
        return session

    def on_doctor_message(self, session):
        """
        Activate a waiting session on the doctor's first reply. A reply that
        arrives after the response deadline expires the session instead.
        """
        with transaction.atomic():
            locked = TextSession.objects.select_for_update().get(pk=session.pk)
            now = self.clock.now()

            if locked.status == TextSessionStatus.ACTIVE:
                locked.last_activity_at = now
                locked.save(update_fields=['last_activity_at', 'updated_at'])
                _sync(session, locked)
                return session
            if locked.status != TextSessionStatus.WAITING_FOR_DOCTOR:
                _sync(session, locked)
                return session
            overdue = locked.is_response_overdue(now)
            if not overdue:
                locked.transition_to(TextSessionStatus.ACTIVE, now)
                locked.save(update_fields=[
                    'status', 'activated_at', 'doctor_response_deadline',
                    'last_activity_at', 'updated_at'
                ])

        _sync(session, locked)
        if overdue:
            logger.info(f"Doctor replied to text session {session.pk} after the deadline")
            self.terminate(session, TextSessionStatus.EXPIRED, EndReason.DOCTOR_NO_RESPONSE)
            return session

        logger.info(
            f"Text session {session.pk} activated, {session.total_allowed_minutes()} minute(s) allowed"
        )
        self._announce(session, TextSessionStatus.WAITING_FOR_DOCTOR)
        return session

    def check_status(self, session):
        """
        Poll a session, applying any transition that is due as a side effect:
        expiry of an overdue doctor response, automatic end when the time
        allowance is used up, or billing of newly completed intervals.

        Returns:
            SessionStatus
        """
        session.refresh_from_db()
        now = self.clock.now()

        if session.is_response_overdue(now):
            self.terminate(session, TextSessionStatus.EXPIRED, EndReason.DOCTOR_NO_RESPONSE)
        elif session.has_run_out_of_time(now):
            self.terminate(session, TextSessionStatus.ENDED, EndReason.AUTO_TIME)
        elif session.status == TextSessionStatus.ACTIVE:
            try:
                self.billing.charge_interval(session)
            except Exception:
                # The status check still answers; the next poll or sweep retries
                logger.exception(f"Auto-deduction failed during status check of text session {session.pk}")

        return self.describe(session, now)

    def end_manually(self, session):
        """End a session at a participant's request; no-op if already terminal"""
        return self.terminate(session, TextSessionStatus.ENDED, EndReason.MANUAL)

    def terminate(self, session, final_status, reason):
        """
        Move a session to a terminal status and settle it.

        Only the first caller to find ``ended_at`` unset under the row lock
        changes anything; later or racing callers are a silent no-op.

        Returns:
            SettlementResult, or None if the session was already terminal
        """
        if final_status not in TERMINAL_STATUSES:
            raise ValueError(f"{final_status} is not a terminal status")

        with transaction.atomic():
            locked = TextSession.objects.select_for_update().get(pk=session.pk)
            if locked.ended_at is not None:
                logger.info(
                    f"Text session {locked.pk} already {locked.status}, ignoring {reason} termination"
                )
                _sync(session, locked)
                return None

            previous = locked.status
            now = self.clock.now()
            locked.transition_to(final_status, now)
            if reason == EndReason.AUTO_TIME:
                # A late poll or sweep does not stretch the session past its allowance
                locked.ended_at = min(now, locked.allowance_ends_at())
            locked.end_reason = reason
            locked.save(update_fields=['status', 'ended_at', 'end_reason', 'last_activity_at', 'updated_at'])

            result = self.billing.settle_final(locked, is_manual=reason == EndReason.MANUAL)

        _sync(session, locked)
        logger.info(
            f"Text session {session.pk} {final_status} ({reason}): "
            f"sessions_used={session.sessions_used}, errors={len(result.errors)}"
        )
        for error in result.errors:
            logger.warning(f"Text session {session.pk} settlement: {error}")
        self._announce(session, previous)
        return result

    def describe(self, session, now=None):
        """Client facing status of a session without side effects"""
        now = now or self.clock.now()
        status = session.status

        if status == TextSessionStatus.WAITING_FOR_DOCTOR:
            if session.doctor_response_deadline is None:
                message = 'Waiting for patient to send first message'
            else:
                message = 'Waiting for doctor response'
            return SessionStatus(
                status='waiting',
                time_remaining=session.response_seconds_remaining(now),
                remaining_time_minutes=session.remaining_time_minutes(now),
                remaining_sessions=session.remaining_sessions(now),
                message=message,
            )

        if status == TextSessionStatus.ACTIVE:
            return SessionStatus(
                status='active',
                time_remaining=None,
                remaining_time_minutes=session.remaining_time_minutes(now),
                remaining_sessions=session.remaining_sessions(now),
                message='Session is active',
                next_deduction_at=session.next_deduction_at(now),
                seconds_until_next_deduction=session.seconds_until_next_deduction(now),
            )

        remaining_sessions = max(0, session.sessions_remaining_before_start - session.sessions_used)
        if status == TextSessionStatus.EXPIRED:
            message = 'Session expired - doctor did not respond, no session was deducted'
        elif session.end_reason == EndReason.AUTO_TIME:
            message = 'Session has ended - time limit reached'
        else:
            message = 'Session has ended'
        return SessionStatus(
            status=status,
            time_remaining=0,
            remaining_time_minutes=0,
            remaining_sessions=remaining_sessions,
            message=message,
        )

    def _announce(self, session, previous_status):
        session_status_changed.send(
            sender=TextSession,
            session=session,
            previous_status=previous_status,
            status=session.status,
        )
