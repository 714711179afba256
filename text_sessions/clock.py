# text_sessions/clock.py
"""Source of "now" for deadline and elapsed time computations."""
from django.utils import timezone


class SystemClock:
    """Timezone-aware wall clock"""

    def now(self):
        return timezone.now()


default_clock = SystemClock()
