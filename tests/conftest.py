"""
Shared fixtures: throwaway RSA material and a scripted requests session.
"""

import datetime
from collections import deque

import pytest
import requests
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from requests.structures import CaseInsensitiveDict

from swish_payments.core.config import ClientConfig

CERT_SERIAL = 0x0A1B2C3D
KEY_PASSPHRASE = "correct horse"


def make_response(status, body=b"", headers=None):
    response = requests.Response()
    response.status_code = status
    response._content = body.encode("utf-8") if isinstance(body, str) else body
    response.headers = CaseInsensitiveDict(headers or {})
    response._content_consumed = True
    return response


class FakeSession:
    """Replays queued responses or exceptions and records every request."""

    def __init__(self, *outcomes):
        self.outcomes = deque(outcomes)
        self.calls = []
        self.closed = False

    def queue(self, *outcomes):
        self.outcomes.extend(outcomes)

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        outcome = self.outcomes.popleft()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def close(self):
        self.closed = True


@pytest.fixture
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def key_file(tmp_path, rsa_key):
    path = tmp_path / "signing.key"
    path.write_bytes(
        rsa_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    return path


@pytest.fixture
def encrypted_key_file(tmp_path, rsa_key):
    path = tmp_path / "signing-encrypted.key"
    path.write_bytes(
        rsa_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.BestAvailableEncryption(KEY_PASSPHRASE.encode("utf-8")),
        )
    )
    return path


@pytest.fixture
def cert_file(tmp_path, rsa_key):
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "1231181189")])
    now = datetime.datetime.now(datetime.timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(rsa_key.public_key())
        .serial_number(CERT_SERIAL)
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .sign(rsa_key, hashes.SHA256())
    )
    path = tmp_path / "signing.pem"
    path.write_bytes(certificate.public_bytes(serialization.Encoding.PEM))
    return path


@pytest.fixture
def config():
    return ClientConfig(
        cert_path="client.pem",
        key_path="client.key",
        payee_alias="1231181189",
        base_url_override="https://swish.test",
        max_retries=2,
        verify_cert_files=False,
    )


@pytest.fixture
def fake_session():
    return FakeSession()


class ZeroJitter:
    def randrange(self, start, stop):
        return start


@pytest.fixture
def no_sleep(monkeypatch):
    """Record backoff waits instead of sleeping."""
    waits = []
    monkeypatch.setattr("swish_payments.core.transport.time.sleep", waits.append)
    return waits
