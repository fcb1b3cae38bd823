# storefront/errors.py


class StorefrontError(Exception):
    """Base class for every error raised by the storefront."""


class ConfigError(StorefrontError):
    """A required environment variable is missing."""


class SignatureError(StorefrontError):
    """Webhook payload signature is missing or does not verify."""


class ValidationError(StorefrontError):
    """Malformed request body or arguments."""


class VendorError(StorefrontError):
    """The payment vendor API call failed."""


class CmsError(StorefrontError):
    """The CMS API call failed."""
