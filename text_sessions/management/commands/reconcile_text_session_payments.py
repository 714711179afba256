# text_sessions/management/commands/reconcile_text_session_payments.py

from django.core.management.base import BaseCommand
from text_sessions.models import TextSession, TERMINAL_STATUSES
from text_sessions.services.billing_engine import BillingEngine


class Command(BaseCommand):
    """Retry the settlement of terminated text sessions left with unpaid intervals"""

    help = 'Re-run settlement for ended text sessions with unbilled intervals or undebited sessions'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Only list the sessions that need reconciliation'
        )
        parser.add_argument(
            '--session',
            type=int,
            help='Reconcile a single session by id'
        )

    def handle(self, *args, **options):
        sessions = TextSession.objects.filter(status__in=TERMINAL_STATUSES).select_related('patient', 'doctor')
        if options['session']:
            sessions = sessions.filter(pk=options['session'])

        pending = [s for s in sessions.order_by('pk') if s.has_outstanding_settlement()]
        self.stdout.write(f"Found {len(pending)} text session(s) requiring reconciliation")

        if options['dry_run']:
            for session in pending:
                self.stdout.write(
                    f"  session {session.pk}: sessions_used={session.sessions_used}, "
                    f"sessions_debited={session.sessions_debited}, end_reason={session.end_reason}"
                )
            return

        engine = BillingEngine()
        settled = 0
        for session in pending:
            result = engine.reconcile(session)
            if result is not None and result.ok:
                settled += 1
            elif result is not None:
                for error in result.errors:
                    self.stderr.write(f"Session {session.pk}: {error}")

        self.stdout.write(self.style.SUCCESS(
            f"Successfully reconciled {settled} of {len(pending)} text session(s)"
        ))
