"""Exception hierarchy for the escalation pipeline."""


class CivicWatchError(Exception):
    """Base exception for all CivicWatch errors."""


class TransitionError(CivicWatchError):
    """The issue record could not be moved to the notified state."""


class AuthorityLookupError(CivicWatchError):
    """The authority store query failed."""


class CompositionError(CivicWatchError):
    """The notification body could not be generated."""


class DeliveryError(CivicWatchError):
    """The mail transport rejected or failed the send."""


class NoValidRecipientsError(DeliveryError):
    """Every resolved authority lacked a usable email address."""

    def __init__(self, authority_count: int = 0) -> None:
        self.authority_count = authority_count
        super().__init__(
            f"No valid recipients: none of {authority_count} authorities has an email address"
        )
