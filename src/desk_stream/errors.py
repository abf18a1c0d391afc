class DeskStreamError(Exception):
    """Base class for errors raised by desk_stream."""


class SubmitTurnError(DeskStreamError):
    """The backend did not accept a submitted turn."""


class TurnInProgressError(DeskStreamError):
    """A turn is already running (or being submitted) for the conversation."""

    def __init__(self, conversation_id: str):
        super().__init__(f"A turn is already in progress for conversation {conversation_id}")
        self.conversation_id = conversation_id


class BackendError(DeskStreamError):
    """The job backend answered with an error status or an unusable body."""


class SubscriptionError(DeskStreamError):
    """An event-log subscription could not be opened or broke mid-stream."""
