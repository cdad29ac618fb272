"""
Domain exceptions raised by the chat and admin services.

Each carries the error code and HTTP status the routers answer with.
"""


class EntitlementError(Exception):
    """Base exception for entitlement and ledger errors."""
    error_code = "entitlement_error"
    status_code = 400
    default_message = "Request could not be completed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class PaymentRequiredError(EntitlementError):
    """Raised when the user has no qualifying access path."""
    error_code = "payment_required"
    status_code = 402
    default_message = "An active subscription is required"


class FreeQuestionExhaustedError(EntitlementError):
    """Raised when the single free question of a free chat is used up."""
    error_code = "free_question_exhausted"
    status_code = 402
    default_message = "The free question for this chat has been used"


class NoUserMessageYetError(EntitlementError):
    """Raised when an assistant message is posted before any user message."""
    error_code = "no_user_message"
    status_code = 400
    default_message = "No user message found in this chat"


class ChatNotFoundError(EntitlementError):
    """Raised when a chat does not exist or belongs to another user."""
    error_code = "chat_not_found"
    status_code = 404
    default_message = "Chat not found"


class UserNotFoundError(EntitlementError):
    """Raised when the target user does not exist."""
    error_code = "user_not_found"
    status_code = 404
    default_message = "User not found"


class SelfActionError(EntitlementError):
    """Raised when an administrator tries to block or delete themselves."""
    error_code = "self_action_forbidden"
    status_code = 400
    default_message = "You cannot perform this action on your own account"


class NoChangesError(EntitlementError):
    """Raised when an entitlement override carries no fields."""
    error_code = "no_changes"
    status_code = 400
    default_message = "No changes provided"
