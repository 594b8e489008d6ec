"""
Pytest configuration and fixtures for all tests.
"""

import os
import sys
import time

import pytest

# Make the plugin module importable without installing it
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, os.path.dirname(__file__))

import keybuilder  # noqa: E402


@pytest.fixture
def now():
    return int(time.time())


@pytest.fixture
def expiring_key(now):
    """Certificate whose primary key expires five days and one hour from now."""
    created = now - 1000
    return keybuilder.build_certificate(
        created=created,
        key_expires_after=1000 + 5 * 86400 + 3600,
    )


@pytest.fixture
def non_expiring_key(now):
    return keybuilder.build_certificate(created=now - 1000)


@pytest.fixture
def expired_key(now):
    """Certificate whose primary key expired ten days (less one hour) ago."""
    created = now - 20 * 86400
    return keybuilder.build_certificate(
        created=created,
        key_expires_after=10 * 86400 + 3600,
    )


@pytest.fixture
def revoked_key(now):
    created = now - 1000
    key = keybuilder.public_key_body(created)
    fpr = keybuilder.fingerprint(key)
    return (
        keybuilder.build_certificate(created, key_expires_after=30 * 86400)
        + keybuilder.new_packet(2, keybuilder.signature_body(0x20, created + 10, issuer_fpr=fpr))
    )
