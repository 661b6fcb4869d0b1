"""
Pytest suite for the Storefront checkout backend.

Test categories:
- Unit tests: pure helpers, gateway adapters, credential checks
- Integration tests: services against in-memory SQLite
- API tests: FastAPI app over httpx ASGITransport
"""
