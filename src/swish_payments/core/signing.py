"""
Payload signing for Swish payouts.

The payout API expects the JSON payload to be hashed with SHA-512 and signed
with the RSA private key of the merchant's signing certificate. Key material
is read fresh for every call and is never cached.

Error messages are deliberately generic: they name the check that failed but
never include OS or OpenSSL error text.
"""

from __future__ import annotations

import base64
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .errors import ErrorKind, SwishError
from .payloads import canonical_json

__all__ = [
    "CredentialProvider",
    "FileCredentialProvider",
    "SignatureService",
    "SignedPayload",
    "get_certificate_serial_number",
    "sign_payload",
    "validate_file_path",
]

_SCHEME_PREFIX = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")

SIGNATURE_HASH = hashes.SHA512
SIGNATURE_PADDING = padding.PKCS1v15


def _signing_error(message: str) -> SwishError:
    return SwishError(ErrorKind.SIGNING, message)


def validate_file_path(path: str, description: str) -> Path:
    """
    Check that ``path`` names a readable regular file and return its real path.

    Rejects empty paths, null bytes and URI schemes (``data://``, ``http://``).
    """
    if not path or not path.strip():
        raise _signing_error(f"The {description} path must not be empty")
    if "\0" in path:
        raise _signing_error(f"Invalid {description} path: contains null bytes")
    if _SCHEME_PREFIX.match(path):
        raise _signing_error(f"Invalid {description} path: URI schemes are not allowed")

    try:
        resolved = Path(path).resolve(strict=True)
    except (OSError, RuntimeError, ValueError):
        raise _signing_error(
            f"The {description} file does not exist: path could not be resolved"
        ) from None

    if not resolved.is_file():
        raise _signing_error(f"The {description} path is not a regular file")
    if not os.access(resolved, os.R_OK):
        raise _signing_error(f"The {description} file is not readable")
    return resolved


class CredentialProvider(Protocol):
    """Source of key and certificate bytes, addressed by an identifier."""

    def load(self, identifier: str, description: str) -> bytes:
        ...


class FileCredentialProvider:
    """Read PEM material from the local filesystem after validating the path."""

    def load(self, identifier: str, description: str) -> bytes:
        resolved = validate_file_path(identifier, description)
        try:
            data = resolved.read_bytes()
        except OSError:
            raise _signing_error(f"Cannot read {description} file") from None
        if not data:
            raise _signing_error(f"Cannot read {description} file")
        return data


@dataclass(frozen=True, repr=False)
class SignedPayload:
    """The exact JSON text that was signed together with its signature."""

    payload_json: str
    signature: str

    def __repr__(self) -> str:
        return f"SignedPayload(signature={self.signature[:12]}...)"


class SignatureService:
    def __init__(self, credentials: Optional[CredentialProvider] = None) -> None:
        self._credentials = credentials or FileCredentialProvider()

    def sign(
        self,
        payload: Mapping[str, Any],
        key_path: str,
        passphrase: Optional[str] = None,
    ) -> str:
        """Return the base64 SHA-512/RSA signature of ``payload``."""
        return self.sign_detailed(payload, key_path, passphrase).signature

    def sign_detailed(
        self,
        payload: Mapping[str, Any],
        key_path: str,
        passphrase: Optional[str] = None,
    ) -> SignedPayload:
        payload_json = canonical_json(payload)
        private_key = self._load_private_key(key_path, passphrase)
        try:
            signature = private_key.sign(
                payload_json.encode("utf-8"),
                SIGNATURE_PADDING(),
                SIGNATURE_HASH(),
            )
        except (ValueError, TypeError):
            raise _signing_error(
                "Failed to sign payout payload. Verify the signing key is valid."
            ) from None
        finally:
            del private_key
        return SignedPayload(payload_json, base64.b64encode(signature).decode("ascii"))

    def get_certificate_serial_number(self, cert_path: str) -> str:
        """Return the certificate serial as uppercase hex, padded to whole bytes."""
        pem = self._credentials.load(cert_path, "certificate")
        try:
            certificate = x509.load_pem_x509_certificate(pem)
            serial = certificate.serial_number
        except (ValueError, TypeError, UnsupportedAlgorithm):
            raise _signing_error(
                "Failed to parse certificate. Verify the file is a valid PEM certificate."
            ) from None

        digits = f"{serial:X}"
        if len(digits) % 2:
            digits = "0" + digits
        return digits

    def _load_private_key(
        self,
        key_path: str,
        passphrase: Optional[str],
    ) -> rsa.RSAPrivateKey:
        key_bytes = self._credentials.load(key_path, "signing key")
        password = passphrase.encode("utf-8") if passphrase else None
        try:
            private_key = serialization.load_pem_private_key(key_bytes, password=password)
        except (ValueError, TypeError, UnsupportedAlgorithm):
            private_key = None
        finally:
            del key_bytes

        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise _signing_error(
                "Failed to load signing private key. Verify the key format and passphrase."
            )
        return private_key


_default_service = SignatureService()


def sign_payload(
    payload: Mapping[str, Any],
    key_path: str,
    passphrase: Optional[str] = None,
) -> str:
    return _default_service.sign(payload, key_path, passphrase)


def get_certificate_serial_number(cert_path: str) -> str:
    return _default_service.get_certificate_serial_number(cert_path)
