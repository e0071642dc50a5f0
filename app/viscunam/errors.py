class PetError(Exception):
    """Base for every error raised by the pet core."""


class ProtocolError(PetError):
    """Malformed wire message. Answered with code 400, state untouched."""


class UnknownAction(ProtocolError):
    def __init__(self, action: str):
        super().__init__(f"Unknown action: {action}")
        self.action = action


class DomainRejection(PetError):
    """A well-formed command the pet refuses. Answered with code 400."""


class AlreadyAwake(DomainRejection):
    def __init__(self, message: str = "Viscunam is already awake and doesn't need coffee"):
        super().__init__(message)


class UnknownSession(PetError):
    """Session already torn down; callers treat it as a no-op."""

    def __init__(self, session_id: str):
        super().__init__(f"Unknown session: {session_id}")
        self.session_id = session_id


class TransportFailure(PetError):
    """The connection behind a session or client dropped."""
