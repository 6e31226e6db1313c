"""Service-principal certificates: eager loading and self-signed generation."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from .errors import InvalidCertificateError

_MODE = "client_certificate"
_PEM_BLOCK = re.compile(
    rb"-----BEGIN ([A-Z0-9 ]+)-----.+?-----END \1-----", re.DOTALL
)


@dataclass(frozen=True)
class LoadedCertificate:
    """Raw certificate bytes plus the parsed certificate, validated up front."""

    data: bytes = field(repr=False)
    certificate: x509.Certificate
    password: bytes | None = field(default=None, repr=False)

    @property
    def thumbprint(self) -> str:
        """SHA-1 thumbprint as shown in the Entra ID portal."""
        return self.certificate.fingerprint(hashes.SHA1()).hex().upper()


def load_certificate(
    certificate_path: str | Path, password: str | None = None
) -> LoadedCertificate:
    """Read and parse a client certificate from disk.

    PEM files must contain both the certificate and its private key; anything
    else is treated as PKCS#12 (``.pfx``/``.p12``).

    Args:
        certificate_path: Path to the certificate file.
        password: Optional password protecting the private key.

    Returns:
        The file contents and the parsed certificate.

    Raises:
        InvalidCertificateError: If the file is missing, unreadable, malformed,
            lacks a private key, or the password is wrong.
    """
    path = Path(certificate_path)
    if not path.is_file():
        raise InvalidCertificateError(
            "certificate_path", _MODE, f"file not found: {path}"
        )
    try:
        data = path.read_bytes()
    except OSError as e:
        raise InvalidCertificateError(
            "certificate_path", _MODE, f"cannot be read: {e.strerror}"
        ) from None

    pwd = password.encode() if password else None
    if b"-----BEGIN" in data:
        certificate = _parse_pem(data, pwd)
    else:
        certificate = _parse_pkcs12(data, pwd)
    return LoadedCertificate(data=data, certificate=certificate, password=pwd)


def _parse_pem(data: bytes, password: bytes | None) -> x509.Certificate:
    blocks = {m.group(1): m.group(0) for m in _PEM_BLOCK.finditer(data)}
    cert_block = blocks.get(b"CERTIFICATE")
    key_block = next(
        (block for label, block in blocks.items() if label.endswith(b"PRIVATE KEY")),
        None,
    )
    if cert_block is None:
        raise InvalidCertificateError(
            "certificate_path", _MODE, "does not contain a PEM certificate"
        )
    if key_block is None:
        raise InvalidCertificateError(
            "certificate_path", _MODE, "does not contain a PEM private key"
        )
    try:
        certificate = x509.load_pem_x509_certificate(cert_block)
    except ValueError:
        raise InvalidCertificateError(
            "certificate_path", _MODE, "contains a malformed certificate"
        ) from None
    try:
        serialization.load_pem_private_key(key_block, password=password)
    except (ValueError, TypeError):
        # TypeError: password given for an unencrypted key or vice versa
        raise InvalidCertificateError(
            "certificate_path",
            _MODE,
            "has an unusable private key (malformed or wrong certificate_password)",
        ) from None
    return certificate


def _parse_pkcs12(data: bytes, password: bytes | None) -> x509.Certificate:
    try:
        key, certificate, _ = pkcs12.load_key_and_certificates(data, password)
    except ValueError:
        raise InvalidCertificateError(
            "certificate_path",
            _MODE,
            "is not a valid PKCS#12 file or certificate_password is wrong",
        ) from None
    if key is None or certificate is None:
        raise InvalidCertificateError(
            "certificate_path", _MODE, "must contain a certificate and private key"
        )
    return certificate


def generate_self_signed_certificate(
    common_name: str,
    *,
    organization_name: str | None = None,
    validity_days: int = 365,
    key_size: int = 2048,
    combined_pem_path: str | Path | None = None,
) -> bytes:
    """Generate a self-signed certificate and key as one combined PEM.

    The result can be uploaded (certificate part) to an app registration and
    used as ``certificate_path`` for the ``client_certificate`` strategy.

    Args:
        common_name: Common Name (CN) for the certificate subject.
        organization_name: Optional Organization Name (O).
        validity_days: Offset in days from now for the expiration time.
        key_size: RSA key size in bits.
        combined_pem_path: Optional path to write the combined PEM to.

    Returns:
        Certificate PEM followed by the unencrypted PKCS#8 private key PEM.
    """
    # Inspect the result with OpenSSL:
    #   openssl x509 -inform pem -in combined.pem -noout -text
    key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)

    attributes = [x509.NameAttribute(NameOID.COMMON_NAME, common_name)]
    if organization_name:
        attributes.append(
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization_name)
        )
    name = x509.Name(attributes)
    now = datetime.now(timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=validity_days))
        .sign(private_key=key, algorithm=hashes.SHA256())
    )

    combined = cert.public_bytes(serialization.Encoding.PEM) + key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    if combined_pem_path is not None:
        Path(combined_pem_path).write_bytes(combined)
    return combined
