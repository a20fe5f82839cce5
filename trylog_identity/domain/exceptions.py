"""Identity domain specific exceptions."""


class IdentityError(Exception):
    """Base class for identity domain errors."""


class AccountValidationError(IdentityError):
    """Raised when account input is rejected before it reaches the store."""


class NotAuthenticatedError(IdentityError):
    """Raised when an operation requiring a signed-in caller gets an anonymous session."""


class AccountStateError(IdentityError):
    """Raised when an authenticated caller has no matching account record."""


class TokenFormatError(IdentityError, ValueError):
    """Raised when a transport-encoded token cannot be decoded."""


class ExhaustedPoolError(IdentityError):
    """Raised when a password character pool runs out of unique candidates."""


class NotificationError(IdentityError):
    """Raised when an email notification could not be handed to the transport."""
