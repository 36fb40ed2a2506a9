"""Custom exceptions for Inbox Tasker."""


class InboxTaskerError(Exception):
    """Base exception for all Inbox Tasker errors."""


class NotReadyError(InboxTaskerError):
    """The mail provider has not finished initializing."""


class AuthenticationError(InboxTaskerError):
    """Sign-in was rejected or credentials are unusable."""


class AuthCancelledError(AuthenticationError):
    """The interactive sign-in flow was aborted or access was denied."""


class FetchError(InboxTaskerError):
    """Listing or fetching messages from the provider failed."""


class RateLimitError(FetchError):
    """Gmail API rate limit exceeded."""


class ParseError(InboxTaskerError):
    """Failed to parse email MIME content."""


class TaskStoreError(InboxTaskerError):
    """The task store rejected a read or write."""


class ConversionError(InboxTaskerError):
    """Failed to turn a message into a stored task."""
