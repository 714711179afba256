# text_sessions/services/expiration_sweeper.py
import logging
from dataclasses import dataclass

from ..models import EndReason, TextSession, TextSessionStatus
from .lifecycle_service import SessionLifecycleController

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    expired: int = 0
    ended: int = 0
    charged: int = 0
    failed: int = 0

    def __str__(self):
        return (
            f"{self.expired} expired, {self.ended} ended, "
            f"{self.charged} interval(s) charged, {self.failed} failed"
        )


class ExpirationSweeper:
    """
    Periodic scan of open text sessions.

    Overdue waiting sessions are expired and active sessions that used up their
    allowance are ended, both through SessionLifecycleController.terminate.
    Other active sessions get their completed intervals billed.
    """

    def __init__(self, controller=None, clock=None):
        self.controller = controller or SessionLifecycleController(clock=clock)
        self.clock = clock or self.controller.clock

    def run(self):
        report = SweepReport()
        now = self.clock.now()

        for session in TextSession.objects.overdue_waiting(now).select_related('patient', 'doctor'):
            try:
                if self.controller.terminate(
                    session, TextSessionStatus.EXPIRED, EndReason.DOCTOR_NO_RESPONSE
                ) is not None:
                    report.expired += 1
            except Exception as e:
                logger.error(f"Sweeper failed to expire text session {session.pk}: {str(e)}")
                report.failed += 1

        for session in TextSession.objects.active().select_related('patient', 'doctor'):
            try:
                if session.has_run_out_of_time(now):
                    if self.controller.terminate(
                        session, TextSessionStatus.ENDED, EndReason.AUTO_TIME
                    ) is not None:
                        report.ended += 1
                else:
                    report.charged += self.controller.billing.charge_interval(session)
            except Exception as e:
                logger.error(f"Sweeper failed to process active text session {session.pk}: {str(e)}")
                report.failed += 1

        logger.info(f"Text session sweep: {report}")
        return report
