# text_sessions/tests/integration/test_commands.py
from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.test import TestCase

from billing.exceptions import WalletWriteFailure
from billing.services.wallet_ledger import WalletLedger
from text_sessions.clock import default_clock
from text_sessions.models import TextSessionStatus
from text_sessions.services.lifecycle_service import SessionLifecycleController
from text_sessions.tasks import sweep_text_sessions
from ..utils import T0, FakeClock, create_doctor, create_patient, credits_left


class CommandTestMixin:
    def setUp(self):
        self.clock = FakeClock()
        self.controller = SessionLifecycleController(clock=self.clock)
        self.patient = create_patient(credits=3)
        self.doctor = create_doctor()

    def call(self, name, *args):
        out = StringIO()
        call_command(name, *args, stdout=out, stderr=StringIO())
        return out.getvalue()


class ExpireTextSessionsCommandTests(CommandTestMixin, TestCase):
    def test_command_expires_overdue_sessions(self):
        session = self.controller.start(self.patient, self.doctor)
        self.controller.on_first_patient_message(session)

        with patch.object(default_clock, 'now', return_value=T0 + timedelta(minutes=2)):
            output = self.call('expire_text_sessions')

        session.refresh_from_db()
        self.assertEqual(session.status, TextSessionStatus.EXPIRED)
        self.assertIn("Expired 1 waiting session(s)", output)
        self.assertIn("Sweep completed", output)

    def test_task_returns_report(self):
        self.assertEqual(
            sweep_text_sessions(),
            "0 expired, 0 ended, 0 interval(s) charged, 0 failed"
        )


class ReconcileCommandTests(CommandTestMixin, TestCase):
    def make_unpaid_session(self):
        session = self.controller.start(self.patient, self.doctor)
        self.controller.on_doctor_message(session)
        self.clock.advance(minutes=15)
        with patch.object(WalletLedger, 'credit', side_effect=WalletWriteFailure('disk full')):
            self.controller.end_manually(session)
        return session

    def test_dry_run_lists_without_changes(self):
        session = self.make_unpaid_session()

        output = self.call('reconcile_text_session_payments', '--dry-run')

        self.assertIn("Found 1 text session(s) requiring reconciliation", output)
        self.assertIn(f"session {session.pk}", output)
        session.refresh_from_db()
        self.assertEqual(session.sessions_used, 0)

    def test_reconcile_pays_outstanding_sessions(self):
        session = self.make_unpaid_session()

        output = self.call('reconcile_text_session_payments')

        session.refresh_from_db()
        self.assertIn("Successfully reconciled 1 of 1", output)
        self.assertEqual(session.sessions_used, 2)
        self.assertEqual(session.sessions_debited, 2)
        self.assertEqual(credits_left(self.patient), 1)
        self.assertIn("Found 0", self.call('reconcile_text_session_payments'))

    def test_single_session_option(self):
        self.make_unpaid_session()
        output = self.call('reconcile_text_session_payments', '--session', '999999', '--dry-run')
        self.assertIn("Found 0", output)
