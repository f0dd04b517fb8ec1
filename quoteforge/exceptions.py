class QuoteForgeError(Exception):
    """Base exception for QuoteForge pricing and workflow errors."""

    default_message = "An error occurred in QuoteForge"
    default_code = None

    def __init__(self, message=None, code=None, details=None):
        """Initialize the exception.

        Args:
            message: Error message
            code: Error code
            details: Additional error details
        """
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details
        super().__init__(self.message)

    def __str__(self):
        """String representation of the error."""
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self):
        """Convert the exception to a dictionary."""
        error_dict = {
            'error': self.__class__.__name__,
            'message': self.message,
        }

        if self.code:
            error_dict['code'] = self.code

        if self.details:
            error_dict['details'] = self.details

        return error_dict


class ConfigError(QuoteForgeError):
    """Exception raised for configuration errors."""

    default_message = "Configuration error"
    default_code = "CONFIG_ERROR"


class DatabaseError(QuoteForgeError):
    """Exception raised for database-related errors."""

    default_message = "Database error"
    default_code = "DATABASE_ERROR"


class InvalidInputError(QuoteForgeError):
    """Exception raised for malformed or out-of-range line data."""

    default_message = "Invalid input"
    default_code = "INVALID_INPUT"


class InvalidStateError(QuoteForgeError):
    """Exception raised when a transition is attempted from an illegal status."""

    default_message = "Invalid quote state"
    default_code = "INVALID_STATE"

    def __init__(self, message=None, code=None, details=None, current_status=None, action=None):
        details = dict(details or {})
        if current_status is not None:
            details['current_status'] = str(current_status)
        if action is not None:
            details['action'] = action
        super().__init__(message, code, details)
        self.current_status = current_status
        self.action = action


class EmptyQuoteError(QuoteForgeError):
    """Exception raised when a quote with no lines is submitted."""

    default_message = "Quote must have at least one line item"
    default_code = "EMPTY_QUOTE"


class NotFoundError(QuoteForgeError):
    """Exception raised when a requested quote or entity is not found."""

    default_message = "Resource not found"
    default_code = "NOT_FOUND"


class ReportingError(QuoteForgeError):
    """Exception raised for reporting errors."""

    default_message = "Reporting error"
    default_code = "REPORTING_ERROR"
