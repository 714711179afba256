# text_sessions/management/commands/expire_text_sessions.py

from django.core.management.base import BaseCommand
from text_sessions.services.expiration_sweeper import ExpirationSweeper


class Command(BaseCommand):
    """Django management command running one text session sweep"""

    help = 'Expire overdue text sessions, end sessions that ran out of time and bill completed intervals'

    def handle(self, *args, **options):
        report = ExpirationSweeper().run()

        self.stdout.write(f"Expired {report.expired} waiting session(s)")
        self.stdout.write(f"Ended {report.ended} session(s) that ran out of time")
        self.stdout.write(f"Charged {report.charged} interval(s)")

        if report.failed:
            self.stdout.write(self.style.WARNING(
                f"{report.failed} session(s) failed, see the log for details"
            ))
        else:
            self.stdout.write(self.style.SUCCESS("Sweep completed"))
