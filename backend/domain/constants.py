"""
Domain constants used across services/routers.
"""

IDEMPOTENCY_HEADER = "X-Idempotency-Key"

CART_REQUIRED_MESSAGE = "Cart is required and cannot be empty"
NONCE_REQUIRED_MESSAGE = "Nonce is required"

# Sandbox nonces understood by SimulatedGateway (same names as Braintree's)
FAKE_VALID_NONCE = "fake-valid-nonce"
FAKE_DECLINED_NONCE = "fake-processor-declined-visa-nonce"
FAKE_GATEWAY_REJECTED_NONCE = "fake-gateway-rejected-fraud-nonce"
