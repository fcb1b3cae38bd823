from storefront import config
from storefront.errors import ConfigError
from storefront.vendors.base import PaymentVendorPort, VendorProduct, VendorEvent, CheckoutSession, OrderSummary


def get_vendor(name=None) -> PaymentVendorPort:
    """Vendor adapter selected by PAYMENT_VENDOR."""
    name = (name or config.PAYMENT_VENDOR).lower()
    if name == "stripe":
        from storefront.vendors.stripe_vendor import StripeVendor
        return StripeVendor()
    if name == "square":
        from storefront.vendors.square_vendor import SquareVendor
        return SquareVendor()
    raise ConfigError(f"Unknown payment vendor: {name}")


__all__ = ["get_vendor", "PaymentVendorPort", "VendorProduct", "VendorEvent", "CheckoutSession", "OrderSummary"]
