from fastapi import HTTPException, status


class MissingFieldsError(HTTPException):
    """Exception raised when a request body lacks required fields."""

    def __init__(self, message: str = "Missing required fields"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=message
        )


class InvalidPayloadError(HTTPException):
    """Exception raised when a payload cannot be decoded."""

    def __init__(self, message: str = "Invalid payload"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=message
        )


class WebhookSignatureError(HTTPException):
    """Exception raised when a webhook signature is missing or does not verify."""

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=message
        )


class AuthenticationError(HTTPException):
    """Exception raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=message,
            headers={"WWW-Authenticate": "Bearer"}
        )


class AuthorizationError(HTTPException):
    """Exception raised for authorization failures."""

    def __init__(self, message: str = "Not authorized to access this resource"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=message
        )


class NotFoundError(HTTPException):
    """Exception raised when a user or subscription is not on file."""

    def __init__(self, message: str = "Not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=message
        )


class UpstreamProcessorError(HTTPException):
    """Exception raised when the payment processor call fails."""

    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Payment processor error: {message}"
        )


class ServiceNotConfiguredError(HTTPException):
    """Exception raised when a required secret or client is missing."""

    def __init__(self, service: str):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"{service} not configured"
        )
