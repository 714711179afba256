# text_sessions/exceptions.py


class TextSessionError(Exception):
    """Base class for text session errors surfaced to API callers"""
    code = 'text_session_error'


class InsufficientCredits(TextSessionError):
    """The patient has no text session units left to start a session"""
    code = 'insufficient_credits'


class SessionAlreadyOpen(TextSessionError):
    """The patient already has an open session with this doctor"""
    code = 'session_already_open'

    def __init__(self, message, session=None):
        super().__init__(message)
        self.session = session


class InvalidParticipant(TextSessionError):
    """The requested doctor or patient cannot take part in a text session"""
    code = 'invalid_participant'


class InvalidTransition(TextSessionError):
    """A status change that the transition table does not allow"""
    code = 'invalid_transition'

    def __init__(self, current, requested):
        super().__init__(f"Cannot move text session from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested
