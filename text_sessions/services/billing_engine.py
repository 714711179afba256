# text_sessions/services/billing_engine.py
"""
Time based billing of text sessions.

A session consumes one unit of the patient's credit for every started (manual
end) or completed (while open, and on automatic end) interval of elapsed time.
Each billed interval credits the doctor's wallet once, keyed by
(session, interval index), so every entry point here is safe to call
repeatedly and from racing callers.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List

from django.db import transaction

from billing.services.payment_rates import text_interval_rate
from billing.services.wallet_ledger import SessionRef, WalletLedger
from ..clock import default_clock
from ..models import EndReason, TextSession, TextSessionStatus

logger = logging.getLogger(__name__)
billing_audit = logging.getLogger('billing_audit')

SESSION_KIND = 'text_session'


def session_ref(session):
    return SessionRef(SESSION_KIND, session.pk)


@dataclass
class SettlementResult:
    """Outcome of a final settlement; failures are collected, never raised"""
    session_id: int
    doctor_payment_success: bool = True
    patient_deduction_success: bool = True
    sessions_deducted: int = 0
    intervals_billed: int = 0
    amount_paid: Decimal = Decimal('0.00')
    shortfall: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self):
        return not self.errors

    def as_dict(self):
        return {
            'session_id': self.session_id,
            'doctor_payment_success': self.doctor_payment_success,
            'patient_deduction_success': self.patient_deduction_success,
            'sessions_deducted': self.sessions_deducted,
            'intervals_billed': self.intervals_billed,
            'amount_paid': str(self.amount_paid),
            'shortfall': self.shortfall,
            'errors': list(self.errors),
        }


@dataclass
class _BillingRun:
    billed: int = 0
    amount: Decimal = Decimal('0.00')
    errors: List[str] = field(default_factory=list)


def _copy_counters(target, source):
    for name in ('sessions_used', 'auto_deductions_processed', 'sessions_debited'):
        setattr(target, name, getattr(source, name))


class BillingEngine:
    """Applies interval charges and final settlement to text sessions"""

    def __init__(self, clock=None, ledger=None):
        self.clock = clock or default_clock
        self.ledger = ledger or WalletLedger

    def charge_interval(self, session):
        """
        Bill every interval completed so far that has not been billed yet.

        Only active sessions are charged. Wallet failures stop the run and are
        logged; the unbilled intervals are picked up by the next call.

        Returns:
            int: Number of intervals newly credited to the doctor
        """
        with transaction.atomic():
            locked = TextSession.objects.select_for_update().get(pk=session.pk)
            if locked.status != TextSessionStatus.ACTIVE:
                return 0

            now = self.clock.now()
            target = min(locked.completed_intervals(now), locked.sessions_remaining_before_start)
            run = self._bill_up_to(locked, target, automatic=True)

        _copy_counters(session, locked)
        if run.billed:
            logger.info(
                f"Auto-deducted {run.billed} interval(s) for text session {locked.pk} "
                f"(sessions_used={locked.sessions_used}, amount={run.amount})"
            )
        return run.billed

    def settle_final(self, session, is_manual):
        """
        Final reconciliation of a terminated session.

        A manual end bills any partially started interval, an automatic end
        only completed ones; both are capped by the credit snapshot taken at
        start. Remaining intervals are credited to the doctor, then the
        patient's subscription is debited for every consumed unit not yet
        debited. Calling this again on a settled session changes nothing.

        Args:
            session: The terminated TextSession
            is_manual: Whether the session was ended by a participant

        Returns:
            SettlementResult: never raises
        """
        result = SettlementResult(session_id=session.pk)
        try:
            with transaction.atomic():
                locked = TextSession.objects.select_for_update().get(pk=session.pk)
                self._settle_locked(locked, is_manual, result)
            _copy_counters(session, locked)
        except Exception as e:
            logger.exception(f"Settlement of text session {session.pk} failed")
            result.doctor_payment_success = False
            result.patient_deduction_success = False
            result.errors.append(f"Settlement failed: {str(e)}")

        billing_audit.info(
            f"SETTLE session={session.pk} manual={is_manual} billed={result.intervals_billed} "
            f"amount={result.amount_paid} deducted={result.sessions_deducted} "
            f"shortfall={result.shortfall} errors={len(result.errors)}"
        )
        return result

    def reconcile(self, session):
        """
        Retry the outstanding parts of a terminated session's settlement.

        Returns:
            SettlementResult or None if there was nothing to do
        """
        if not session.is_terminal or not session.has_outstanding_settlement():
            return None
        logger.info(f"Reconciling settlement of text session {session.pk}")
        return self.settle_final(session, is_manual=session.end_reason == EndReason.MANUAL)

    def _settle_locked(self, locked, is_manual, result):
        now = self.clock.now()
        owed = locked.owed_intervals(is_manual, now)
        available = locked.sessions_remaining_before_start
        target = min(owed, available)

        # Automatic ends stop at the allowance, so only a manual end can owe more
        if is_manual:
            result.shortfall = max(0, owed - available)
        if result.shortfall:
            logger.warning(
                f"Text session {locked.pk} owes {owed} interval(s) but only {available} "
                f"were available at start; {result.shortfall} not billed"
            )
            result.errors.append(
                f"InsufficientCredits: {result.shortfall} interval(s) owed beyond the "
                f"{available} available at start"
            )

        run = self._bill_up_to(locked, target, automatic=False)
        result.intervals_billed = run.billed
        result.amount_paid = run.amount
        if run.errors:
            result.doctor_payment_success = False
            result.errors.extend(run.errors)

        self._debit_patient(locked, result)

    def _debit_patient(self, locked, result):
        to_debit = locked.sessions_used - locked.sessions_debited
        if to_debit <= 0:
            return

        ref = session_ref(locked)
        try:
            with transaction.atomic():
                debit = self.ledger.debit_subscription(locked.patient, to_debit, session_ref=ref)
                locked.sessions_debited += to_debit
                locked.save(update_fields=['sessions_debited', 'updated_at'])
        except Exception as e:
            locked.refresh_from_db(fields=['sessions_debited'])
            logger.error(
                f"Failed to debit {to_debit} session(s) from patient {locked.patient_id} "
                f"for text session {locked.pk}: {str(e)}"
            )
            result.patient_deduction_success = False
            result.errors.append(f"Failed to deduct from patient subscription: {str(e)}")
            return

        result.sessions_deducted = debit.debited
        if debit.insufficient:
            result.patient_deduction_success = False
            result.errors.append(
                f"InsufficientCredits: patient subscription was short {debit.missing} session(s)"
            )

    def _bill_up_to(self, locked, target, automatic):
        """
        Credit intervals [sessions_used, target) of a locked session.

        Counters advance for every interval that is recorded in the ledger,
        including ones a racing caller recorded first.
        """
        run = _BillingRun()
        if target <= locked.sessions_used:
            return run

        ref = session_ref(locked)
        try:
            wallet = self.ledger.get_or_create_wallet(locked.doctor)
            rate = text_interval_rate(wallet.currency)
        except Exception as e:
            logger.error(
                f"Cannot open wallet of doctor {locked.doctor_id} to bill text session "
                f"{locked.pk} intervals {locked.sessions_used}..{target - 1}: {str(e)}"
            )
            run.errors.append(f"WalletWriteFailure: {str(e)}")
            return run

        for index in range(locked.sessions_used, target):
            try:
                credited = self.ledger.credit(
                    wallet,
                    rate,
                    ref,
                    index,
                    description=f"Text session {locked.pk} interval {index + 1}",
                    metadata={
                        'patient_id': locked.patient_id,
                        'automatic': automatic,
                        'currency': wallet.currency,
                    }
                )
            except Exception as e:
                logger.error(
                    f"Failed to bill interval {index} of text session {locked.pk} "
                    f"(amount {rate} {wallet.currency}, doctor {locked.doctor_id}): {str(e)}"
                )
                run.errors.append(f"WalletWriteFailure: interval {index}: {str(e)}")
                break

            locked.sessions_used += 1
            if automatic:
                locked.auto_deductions_processed += 1
            if credited:
                run.billed += 1
                run.amount += rate

        locked.save(update_fields=['sessions_used', 'auto_deductions_processed', 'updated_at'])
        return run
