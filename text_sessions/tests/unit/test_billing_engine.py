# text_sessions/tests/unit/test_billing_engine.py
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase

from billing.exceptions import WalletWriteFailure
from billing.models import DoctorWallet, WalletTransaction
from billing.services.wallet_ledger import WalletLedger
from text_sessions.models import EndReason, TextSession, TextSessionStatus
from text_sessions.services.billing_engine import BillingEngine, SESSION_KIND, session_ref
from ..utils import T0, FakeClock, create_doctor, create_patient, credits_left


class BillingEngineTestMixin:
    def setUp(self):
        self.clock = FakeClock()
        self.engine = BillingEngine(clock=self.clock)
        self.patient = create_patient(credits=3)
        self.doctor = create_doctor()

    def make_active_session(self, credits=3):
        return TextSession.objects.create(
            patient=self.patient,
            doctor=self.doctor,
            status=TextSessionStatus.ACTIVE,
            started_at=T0,
            last_activity_at=T0,
            activated_at=T0 + timedelta(seconds=30),
            sessions_remaining_before_start=credits,
        )

    def end(self, session, minutes, reason=EndReason.MANUAL, status=TextSessionStatus.ENDED):
        self.clock.at(minutes=minutes)
        session.transition_to(status, self.clock.now())
        session.end_reason = reason
        session.save()
        return session

    def transactions(self, session):
        return WalletTransaction.objects.filter(session_type=SESSION_KIND, session_id=session.pk)

    def wallet(self):
        return DoctorWallet.objects.get(doctor=self.doctor)


class ChargeIntervalTests(BillingEngineTestMixin, TestCase):
    def test_nothing_billed_before_first_interval(self):
        session = self.make_active_session()
        self.clock.at(minutes=9, seconds=59)

        self.assertEqual(self.engine.charge_interval(session), 0)
        self.assertEqual(session.sessions_used, 0)
        self.assertFalse(self.transactions(session).exists())

    def test_bills_each_completed_interval_once(self):
        session = self.make_active_session()

        self.clock.at(minutes=10)
        self.assertEqual(self.engine.charge_interval(session), 1)
        self.clock.at(minutes=21)
        self.assertEqual(self.engine.charge_interval(session), 1)

        session.refresh_from_db()
        self.assertEqual(session.sessions_used, 2)
        self.assertEqual(session.auto_deductions_processed, 2)
        self.assertEqual(
            list(self.transactions(session).order_by('interval_index').values_list('interval_index', flat=True)),
            [0, 1]
        )
        self.assertEqual(self.wallet().balance, Decimal('8.00'))

    def test_repeated_calls_for_same_snapshot_are_idempotent(self):
        """Redundant callers on the same elapsed time write one entry per interval"""
        session = self.make_active_session()
        self.clock.at(minutes=20)

        billed = [self.engine.charge_interval(session) for _ in range(5)]

        self.assertEqual(billed, [2, 0, 0, 0, 0])
        self.assertEqual(self.transactions(session).count(), 2)
        self.assertEqual(self.wallet().balance, Decimal('8.00'))
        self.assertTrue(self.wallet().is_consistent())

    def test_stale_instance_does_not_rebill(self):
        """A caller holding an outdated copy of the session reads the locked row"""
        session = self.make_active_session()
        stale = TextSession.objects.get(pk=session.pk)
        self.clock.at(minutes=10)

        self.engine.charge_interval(session)
        self.engine.charge_interval(stale)

        self.assertEqual(stale.sessions_used, 1)
        self.assertEqual(self.transactions(session).count(), 1)

    def test_interval_recorded_by_racing_writer_advances_counters(self):
        """An existing ledger entry for an interval is skipped without error"""
        session = self.make_active_session()
        wallet = WalletLedger.get_or_create_wallet(self.doctor)
        WalletLedger.credit(wallet, Decimal('4.00'), session_ref(session), 0)
        self.clock.at(minutes=10)

        self.assertEqual(self.engine.charge_interval(session), 0)
        session.refresh_from_db()
        self.assertEqual(session.sessions_used, 1)
        self.assertEqual(self.transactions(session).count(), 1)
        self.assertEqual(self.wallet().balance, Decimal('4.00'))

    def test_never_exceeds_snapshot(self):
        session = self.make_active_session(credits=2)
        self.clock.at(hours=3)

        self.engine.charge_interval(session)

        session.refresh_from_db()
        self.assertEqual(session.auto_deductions_processed, 2)
        self.assertEqual(session.sessions_used, 2)

    def test_counters_never_decrease(self):
        session = self.make_active_session()
        seen = []
        for minutes in (5, 10, 3, 20, 15, 29, 30):
            self.clock.at(minutes=minutes)
            self.engine.charge_interval(session)
            seen.append(session.auto_deductions_processed)

        self.assertEqual(seen, sorted(seen))
        self.assertLessEqual(seen[-1], session.sessions_remaining_before_start)

    def test_only_active_sessions_are_charged(self):
        session = self.make_active_session()
        TextSession.objects.filter(pk=session.pk).update(status=TextSessionStatus.WAITING_FOR_DOCTOR)
        self.clock.at(minutes=20)

        self.assertEqual(self.engine.charge_interval(session), 0)
        self.assertFalse(self.transactions(session).exists())

    def test_patient_is_not_debited_while_open(self):
        session = self.make_active_session()
        self.clock.at(minutes=20)
        self.engine.charge_interval(session)
        self.assertEqual(credits_left(self.patient), 3)

    def test_wallet_failure_stops_run_and_is_logged(self):
        session = self.make_active_session()
        self.clock.at(minutes=20)
        failure = WalletWriteFailure('database is locked', interval_index=0)

        with patch.object(WalletLedger, 'credit', side_effect=failure):
            with self.assertLogs('text_sessions.services.billing_engine', level='ERROR') as logs:
                billed = self.engine.charge_interval(session)

        self.assertEqual(billed, 0)
        self.assertEqual(session.sessions_used, 0)
        self.assertIn(f"interval 0 of text session {session.pk}", logs.output[0])
        self.assertIn("4.00 USD", logs.output[0])

        # Next call picks the intervals up
        self.assertEqual(self.engine.charge_interval(session), 2)

    def test_malawi_doctor_is_paid_in_kwacha(self):
        self.doctor = create_doctor(username='mwdoctor', country='Malawi')
        session = self.make_active_session()
        self.clock.at(minutes=10)

        self.engine.charge_interval(session)

        self.assertEqual(self.wallet().currency, 'MWK')
        self.assertEqual(self.wallet().balance, Decimal('4000.00'))


class SettleFinalTests(BillingEngineTestMixin, TestCase):
    def test_manual_end_bills_partial_interval(self):
        session = self.make_active_session()
        self.end(session, minutes=12)

        result = self.engine.settle_final(session, is_manual=True)

        self.assertTrue(result.ok)
        self.assertEqual(result.intervals_billed, 2)
        self.assertEqual(result.amount_paid, Decimal('8.00'))
        self.assertEqual(result.sessions_deducted, 2)
        self.assertEqual(session.sessions_used, 2)
        self.assertEqual(session.sessions_debited, 2)
        self.assertEqual(credits_left(self.patient), 1)

    def test_automatic_end_bills_completed_intervals_only(self):
        session = self.make_active_session()
        self.end(session, minutes=12, reason=EndReason.AUTO_TIME)

        result = self.engine.settle_final(session, is_manual=False)

        self.assertEqual(result.intervals_billed, 1)
        self.assertEqual(session.sessions_used, 1)
        self.assertEqual(credits_left(self.patient), 2)

    def test_settles_only_what_auto_deduction_left(self):
        session = self.make_active_session()
        self.clock.at(minutes=20)
        self.engine.charge_interval(session)
        self.end(session, minutes=25)

        result = self.engine.settle_final(session, is_manual=True)

        self.assertEqual(result.intervals_billed, 1)
        self.assertEqual(result.sessions_deducted, 3)
        self.assertEqual(self.transactions(session).count(), 3)
        self.assertEqual(self.wallet().balance, Decimal('12.00'))
        self.assertEqual(credits_left(self.patient), 0)

    def test_shortfall_is_reported_not_raised(self):
        """One credit, manually ended at minute 12"""
        session = self.make_active_session(credits=1)
        self.end(session, minutes=12)

        result = self.engine.settle_final(session, is_manual=True)

        self.assertEqual(result.shortfall, 1)
        self.assertEqual(result.intervals_billed, 1)
        self.assertEqual(session.sessions_used, 1)
        self.assertEqual(self.wallet().balance, Decimal('4.00'))
        self.assertTrue(result.doctor_payment_success)
        self.assertTrue(any('InsufficientCredits' in e for e in result.errors))

    def test_late_automatic_end_reports_no_shortfall(self):
        """An automatic end recorded after the allowance bills the allowance and nothing more"""
        session = self.make_active_session(credits=1)
        self.end(session, minutes=21, reason=EndReason.AUTO_TIME)

        result = self.engine.settle_final(session, is_manual=False)

        self.assertTrue(result.ok)
        self.assertEqual(result.shortfall, 0)
        self.assertEqual(result.intervals_billed, 1)
        self.assertEqual(credits_left(self.patient), 0)

    def test_never_activated_session_bills_nothing(self):
        session = self.make_active_session()
        TextSession.objects.filter(pk=session.pk).update(activated_at=None)
        session.refresh_from_db()
        self.end(session, minutes=45, reason=EndReason.DOCTOR_NO_RESPONSE, status=TextSessionStatus.ENDED)

        result = self.engine.settle_final(session, is_manual=False)

        self.assertEqual(result.intervals_billed, 0)
        self.assertEqual(result.sessions_deducted, 0)
        self.assertFalse(self.transactions(session).exists())
        self.assertEqual(credits_left(self.patient), 3)

    def test_second_settlement_changes_nothing(self):
        session = self.make_active_session()
        self.end(session, minutes=15)
        self.engine.settle_final(session, is_manual=True)

        result = self.engine.settle_final(session, is_manual=True)

        self.assertEqual(result.intervals_billed, 0)
        self.assertEqual(result.sessions_deducted, 0)
        self.assertEqual(self.transactions(session).count(), 2)
        self.assertEqual(credits_left(self.patient), 1)

    def test_wallet_failure_is_captured(self):
        session = self.make_active_session()
        self.end(session, minutes=15)

        with patch.object(WalletLedger, 'credit', side_effect=WalletWriteFailure('disk full')):
            result = self.engine.settle_final(session, is_manual=True)

        self.assertFalse(result.doctor_payment_success)
        self.assertTrue(result.patient_deduction_success)
        self.assertTrue(any('WalletWriteFailure' in e for e in result.errors))
        session.refresh_from_db()
        self.assertEqual(session.status, TextSessionStatus.ENDED)
        self.assertEqual(session.sessions_used, 0)
        self.assertTrue(session.has_outstanding_settlement())

    def test_subscription_failure_is_captured(self):
        session = self.make_active_session()
        self.end(session, minutes=15)

        with patch.object(WalletLedger, 'debit_subscription', side_effect=RuntimeError('subscription service down')):
            result = self.engine.settle_final(session, is_manual=True)

        self.assertTrue(result.doctor_payment_success)
        self.assertFalse(result.patient_deduction_success)
        session.refresh_from_db()
        self.assertEqual(session.sessions_used, 2)
        self.assertEqual(session.sessions_debited, 0)
        self.assertEqual(credits_left(self.patient), 3)

    def test_patient_short_of_credits(self):
        """Credits spent elsewhere during the session are clamped at zero"""
        session = self.make_active_session()
        self.patient.subscription.text_sessions_remaining = 1
        self.patient.subscription.save()
        self.end(session, minutes=25)

        result = self.engine.settle_final(session, is_manual=True)

        self.assertEqual(result.sessions_deducted, 1)
        self.assertFalse(result.patient_deduction_success)
        self.assertEqual(credits_left(self.patient), 0)
        self.assertEqual(session.sessions_debited, 3)

    def test_unexpected_error_never_raises(self):
        session = self.make_active_session()
        self.end(session, minutes=15)

        with patch.object(TextSession, 'owed_intervals', side_effect=RuntimeError('boom')):
            result = self.engine.settle_final(session, is_manual=True)

        self.assertFalse(result.ok)
        self.assertIn('Settlement failed: boom', result.errors)

    def test_result_as_dict(self):
        session = self.make_active_session()
        self.end(session, minutes=5)

        data = self.engine.settle_final(session, is_manual=True).as_dict()

        self.assertEqual(data['session_id'], session.pk)
        self.assertEqual(data['amount_paid'], '4.00')
        self.assertEqual(data['errors'], [])


class ReconcileTests(BillingEngineTestMixin, TestCase):
    def test_reconcile_retries_failed_credit(self):
        session = self.make_active_session()
        self.end(session, minutes=15)
        with patch.object(WalletLedger, 'credit', side_effect=WalletWriteFailure('disk full')):
            self.engine.settle_final(session, is_manual=True)

        # Reconciliation runs later; billing is based on ended_at
        self.clock.at(hours=4)
        result = self.engine.reconcile(session)

        self.assertTrue(result.ok)
        self.assertEqual(result.intervals_billed, 2)
        self.assertEqual(session.sessions_used, 2)
        self.assertEqual(credits_left(self.patient), 1)
        self.assertIsNone(self.engine.reconcile(session))

    def test_reconcile_skips_open_sessions(self):
        session = self.make_active_session()
        self.clock.at(minutes=15)
        self.assertIsNone(self.engine.reconcile(session))
