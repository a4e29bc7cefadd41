"""Error taxonomy shared by the service layer.

Services raise these; the handlers registered in ``talenthub.main`` turn
them into the ``{success: false, message}`` envelope with the matching
HTTP status.
"""

from fastapi import status


class AppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Unexpected error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class Unauthenticated(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Already exists"


class CollaboratorFailure(AppError):
    default_message = "Upstream service failed"


class SelfConversationError(InvalidInput):
    default_message = "Cannot DM yourself"


class EmptyMessageError(InvalidInput):
    default_message = "Message must have content or attachment"


class AccessDenied(Forbidden):
    default_message = "Access denied"


class ResolutionFailed(CollaboratorFailure):
    default_message = "Failed to resolve conversation"
