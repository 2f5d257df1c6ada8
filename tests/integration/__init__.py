"""
tests/integration/
~~~~~~~~~~~~~~~~~~
Integration tests that call the real AviationStack API.

These tests are SKIPPED by default. To run them:

    INTEGRATION_TESTS=1 AVIATIONSTACK_API_KEY=... pytest tests/integration/ -v

Rate Limit Considerations:
- AviationStack free tier: 100 calls per month - every test here spends one
- Never enable in CI
"""
