# text_sessions/signals.py
from django.dispatch import Signal

# Sent after every committed status change of a text session.
# Arguments: session, previous_status (None when the session was just started), status
session_status_changed = Signal()
