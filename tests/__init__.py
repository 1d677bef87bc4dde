"""
Test Package
============

Unit and integration tests for PhonePool.

Test organization:
    - test_providers.py: Cloud phone provider adapters
    - test_orchestrator.py, test_navigation.py, test_supervisor.py: Capture pipeline
    - test_repository.py, test_allocator.py, test_sessions.py: Pool and session state
    - test_subscriptions.py, test_crypto_pay.py, test_conversion.py: Billing
    - test_rental.py: Service-level customer and admin flows
    - test_api.py: FastAPI endpoint tests

Run tests with:
    pytest tests/ -v
    pytest tests/ -v --cov=phonepool --cov-report=html
"""
