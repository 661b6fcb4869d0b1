"""
Custom exception classes for payment gateway adapters.

Raised by services.payment_gateway implementations; the checkout
orchestrator maps them to GatewayError responses.
"""


class GatewayUnavailableError(Exception):
    """Raised when the payment gateway cannot be reached or errors out."""
    pass


class GatewayConfigurationError(Exception):
    """Raised when the gateway is selected but its credentials are missing."""
    pass
