"""Pytest configuration for mtls_edge tests."""
import sys
from pathlib import Path

# Add src/ to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import pytest

from mtls_edge.client_auth import ClientAuthRecord


@pytest.fixture
def verified_record():
    """Record for a presented certificate that verified successfully."""
    return ClientAuthRecord.from_mapping({
        'certPresented': '1',
        'certVerified': 'SUCCESS',
        'certSubjectDN': 'CN=alice,O=Example',
        'certIssuerDN': 'CN=Example CA,O=Example',
        'certSerial': '0A1B2C',
        'certFingerprintSHA1': 'a1b2c3d4e5f60718293a4b5c6d7e8f9012345678',
        'certNotBefore': 'Dec 22 19:39:00 2018 GMT',
        'certNotAfter': 'Dec 22 19:39:00 2028 GMT',
    })
