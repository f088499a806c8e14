class ServiceError(Exception):
    """Base class for service layer errors."""

    def __init__(self, message="An internal service error occurred.", status_code=500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ConversationNotFoundError(ServiceError):
    def __init__(self, message="Conversation not found"):
        super().__init__(message, status_code=404)


class TemplateNotFoundError(ServiceError):
    def __init__(self, message="Template not found"):
        super().__init__(message, status_code=404)


class LogEntryNotFoundError(ServiceError):
    def __init__(self, message="Entry not found"):
        super().__init__(message, status_code=404)


class UserNotFoundError(ServiceError):
    def __init__(self, message="User not found"):
        super().__init__(message, status_code=404)


class NotAuthorizedError(ServiceError):
    def __init__(self, message="Not a participant"):
        super().__init__(message, status_code=403)


class InvalidRequestError(ServiceError):
    """Missing, blank or malformed input, detected before any mutation."""

    def __init__(self, message="Invalid request"):
        super().__init__(message, status_code=400)


class ConflictError(ServiceError):
    """For conflicts like trying to add an existing participant."""

    def __init__(self, message="Operation conflicts with existing state."):
        super().__init__(message, status_code=409)


class NoCounterpartyError(ServiceError):
    """No identity is available to receive a new conversation."""

    def __init__(self, message="No support staff available to receive messages"):
        super().__init__(message, status_code=500)


class DatabaseError(ServiceError):
    """For general database errors during service operations."""

    def __init__(self, message="A database error occurred."):
        super().__init__(message, status_code=500)
