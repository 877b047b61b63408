"""
Custom exceptions for Inbox Courier.
"""


class InboxCourierException(Exception):
    """Base exception for all custom exceptions."""

    pass


# ============================================================================
# Configuration Exceptions
# ============================================================================


class ConfigurationError(InboxCourierException):
    """Configuration is invalid or missing."""

    pass


# ============================================================================
# Graph API Exceptions
# ============================================================================


class GraphAPIError(InboxCourierException):
    """Error communicating with Microsoft Graph API."""

    pass


class AuthenticationError(GraphAPIError):
    """Authentication failed for Graph API."""

    pass


class RateLimitError(GraphAPIError):
    """Graph API rate limit exceeded."""

    pass


class ResourceNotFoundError(GraphAPIError):
    """Requested Graph resource (message, subscription) does not exist."""

    pass


class MailSendError(GraphAPIError):
    """Failed to send a reply through the mailbox."""

    pass


# ============================================================================
# AI/Claude API Exceptions
# ============================================================================


class ClaudeAPIError(InboxCourierException):
    """Error communicating with Claude API."""

    pass


class GenerationError(ClaudeAPIError):
    """Text generation failed or is not configured."""

    pass


# ============================================================================
# Database Exceptions
# ============================================================================


class DatabaseError(InboxCourierException):
    """Database operation failed."""

    pass


# ============================================================================
# Telegram Exceptions
# ============================================================================


class TelegramAPIError(InboxCourierException):
    """Error communicating with the Telegram Bot API."""

    pass
