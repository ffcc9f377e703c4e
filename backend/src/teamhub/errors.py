"""Error taxonomy for team membership and payment reconciliation."""


class TeamHubError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__doc__ or ""
        super().__init__(self.message)


class ValidationError(TeamHubError):
    """Invalid input; no state was changed."""


class TeamFullError(ValidationError):
    """Team has reached the member limit of its tier."""


class NotFoundError(TeamHubError):
    """Referenced team, user or record does not exist."""


class AlreadyMemberError(TeamHubError):
    """User is already a member of this team."""


class PermissionDeniedError(TeamHubError):
    """Caller is not allowed to perform this action."""


class SelfRemovalError(TeamHubError):
    """Admins cannot remove themselves; cancel the subscription instead."""


class PaymentProviderError(TeamHubError):
    """The payment processor call failed. Please try again."""


class SignatureError(TeamHubError):
    """Webhook signature verification failed."""


class MalformedEventError(TeamHubError):
    """Webhook event lacks the metadata needed to reconcile it."""


class IntentError(TeamHubError):
    """Checkout intent is unknown, expired or already used."""
