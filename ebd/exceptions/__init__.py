"""Custom exceptions for the EBD application."""


class EbdError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class ValidationError(EbdError):
    """Malformed input or missing required field."""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)


class BusinessLogicError(EbdError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(EbdError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class UnauthorizedError(EbdError):
    """Raised when a caller lacks credentials for an action."""
    def __init__(self, message="Unauthorized access", status_code=403):
        super().__init__(message, status_code)


class DataIntegrityError(EbdError):
    """A linked record required by the operation is missing."""
    def __init__(self, message, payload=None):
        super().__init__(message, 422, payload)


class ProviderError(EbdError):
    """An external provider (Bling, Mercado Pago, Shopify...) answered with an error."""
    def __init__(self, provider, message, http_status=None, payload=None):
        super().__init__(f"[{provider}] {message}", 502, payload)
        self.provider = provider
        self.http_status = http_status

    def to_dict(self):
        rv = super().to_dict()
        rv['provider'] = self.provider
        if self.http_status is not None:
            rv['http_status'] = self.http_status
        return rv


class TokenRefreshError(ProviderError):
    """Raised when exchanging a refresh token for a new access token fails."""
    def __init__(self, provider, message="Token refresh failed", http_status=None):
        super().__init__(provider, message, http_status)
