"""
Root pytest configuration for the Django project.

This module configures pytest-django and provides project-wide fixtures.
Escrow fixtures live in escrow/conftest.py.
"""

import os

import django
import pytest

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Run Celery tasks inline; .delay() never needs a broker in tests
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "True"


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()

    from django.conf import settings

    # Disable throttling during tests to prevent rate limit failures
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}

    # Test client requests are plain http; production settings would redirect them
    settings.SECURE_SSL_REDIRECT = False

    # Use fast password hasher for tests (PBKDF2 is too slow with 870K iterations)
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    # Celery looks these up on the Django settings object with the CELERY_
    # namespace, which wins over lowercase keys set on app.conf
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full escrow journeys)
    - test_views.py, test_webhook_*.py, test_*_sweep.py, service tests → integration
    - test_models.py, test_commission.py, test_adapters, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_webhook_views.py",
        "test_webhook_tasks.py",
        "test_webhook_handlers.py",
        "test_transaction_service.py",
        "test_payout_executor.py",
        "test_payout_scheduler.py",
        "test_hold_ledger.py",
        "test_webhook_ingestion.py",
        "test_payout_sweep.py",
        "test_release_sweep.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_commission.py",
        "test_authorization.py",
        "test_notifications.py",
        "test_stripe_adapter.py",
        "test_paypal_adapter.py",
        "test_rails.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)
