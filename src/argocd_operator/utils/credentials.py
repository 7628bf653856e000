"""
Credential and certificate generation for Argo CD instances.

Passwords and keys come from the ``secrets`` module, password hashes from
bcrypt and certificates from the ``cryptography`` x509 builder. Everything
returned is raw bytes ready to be stored in a secret; PEM for certificates
and keys.
"""

import logging
import secrets
import string
from datetime import UTC, datetime, timedelta

import bcrypt
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from argocd_operator.constants import (
    CA_VALIDITY_DAYS,
    DEFAULT_ADMIN_PASSWORD_LENGTH,
    DEFAULT_GRAFANA_SECRET_KEY_LENGTH,
    DEFAULT_PASSWORD_HASH_ROUNDS,
    DEFAULT_RSA_KEY_SIZE,
    DEFAULT_SESSION_KEY_LENGTH,
    GRPC_SUFFIX,
    LEAF_VALIDITY_DAYS,
)
from argocd_operator.errors import CryptoError, HashError
from argocd_operator.models.argocd import ArgoCDInstance

logger = logging.getLogger(__name__)

PASSWORD_ALPHABET = string.ascii_letters + string.digits

# bcrypt only considers the first 72 bytes of its input
BCRYPT_MAX_INPUT_BYTES = 72


def _random_string(length: int) -> bytes:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length)).encode()


def _private_key_pem(key: rsa.RSAPrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def leaf_dns_names(instance: ArgoCDInstance) -> list[str]:
    """
    Subject alternative names for the instance's leaf certificate.

    The server name, its gRPC alias and the in-cluster service FQDN are
    always present. Grafana and Prometheus hosts are added when those
    components are enabled.
    """
    names = [
        instance.name,
        instance.name_with_suffix(GRPC_SUFFIX),
        f"{instance.name}.{instance.namespace}.svc.cluster.local",
    ]
    if instance.spec.grafana.enabled:
        names.append(instance.grafana_host)
    if instance.spec.prometheus.enabled:
        names.append(instance.prometheus_host)
    return names


class CredentialFactory:
    """Generates passwords, keys and certificates."""

    def __init__(
        self,
        hash_rounds: int = DEFAULT_PASSWORD_HASH_ROUNDS,
        key_size: int = DEFAULT_RSA_KEY_SIZE,
    ):
        """
        Initialize credential factory.

        Args:
            hash_rounds: bcrypt cost factor
            key_size: RSA modulus size for generated keys
        """
        self.hash_rounds = hash_rounds
        self.key_size = key_size

    leaf_dns_names = staticmethod(leaf_dns_names)

    def generate_password(self) -> bytes:
        """Generate an alphanumeric admin password."""
        return _random_string(DEFAULT_ADMIN_PASSWORD_LENGTH)

    def generate_session_key(self) -> bytes:
        """Generate the server session signing key."""
        return _random_string(DEFAULT_SESSION_KEY_LENGTH)

    def generate_secret_key(self) -> bytes:
        """Generate a per-component secret key."""
        return _random_string(DEFAULT_GRAFANA_SECRET_KEY_LENGTH)

    def hash_password(self, plaintext: bytes) -> str:
        """
        Hash a password with bcrypt.

        Raises:
            HashError: If hashing fails or the password exceeds bcrypt's
                72 byte input limit
        """
        if len(plaintext) > BCRYPT_MAX_INPUT_BYTES:
            raise HashError(
                f"Password is longer than {BCRYPT_MAX_INPUT_BYTES} bytes"
            )
        try:
            hashed = bcrypt.hashpw(plaintext, bcrypt.gensalt(self.hash_rounds))
        except (ValueError, TypeError) as e:
            raise HashError(f"Failed to hash password: {e}", cause=e) from e
        return hashed.decode()

    def verify_password(self, candidate: bytes, hashed: bytes | str | None) -> bool:
        """
        Check a plaintext password against a stored bcrypt hash.

        A missing or malformed hash never matches, and neither does a
        candidate bcrypt could only compare by its first 72 bytes.
        """
        if not hashed or len(candidate) > BCRYPT_MAX_INPUT_BYTES:
            return False
        if isinstance(hashed, str):
            hashed = hashed.encode()
        try:
            return bcrypt.checkpw(candidate, hashed)
        except ValueError:
            logger.debug("Stored password hash is malformed")
            return False

    def _new_private_key(self) -> rsa.RSAPrivateKey:
        return rsa.generate_private_key(public_exponent=65537, key_size=self.key_size)

    def generate_self_signed_ca(self, common_name: str) -> tuple[bytes, bytes]:
        """
        Generate a self-signed certificate authority.

        Args:
            common_name: Subject common name of the CA

        Returns:
            Tuple of (certificate PEM, private key PEM)

        Raises:
            CryptoError: If key or certificate generation fails
        """
        try:
            key = self._new_private_key()
            subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
            now = datetime.now(UTC)

            cert = (
                x509.CertificateBuilder()
                .subject_name(subject)
                .issuer_name(subject)
                .public_key(key.public_key())
                .serial_number(x509.random_serial_number())
                .not_valid_before(now)
                .not_valid_after(now + timedelta(days=CA_VALIDITY_DAYS))
                .add_extension(
                    x509.BasicConstraints(ca=True, path_length=None), critical=True
                )
                .add_extension(
                    x509.KeyUsage(
                        digital_signature=True,
                        content_commitment=False,
                        key_encipherment=True,
                        data_encipherment=False,
                        key_agreement=False,
                        key_cert_sign=True,
                        crl_sign=True,
                        encipher_only=False,
                        decipher_only=False,
                    ),
                    critical=True,
                )
                .sign(key, hashes.SHA256())
            )
        except (ValueError, TypeError) as e:
            raise CryptoError(f"Failed to generate CA {common_name}: {e}", cause=e) from e

        return cert.public_bytes(serialization.Encoding.PEM), _private_key_pem(key)

    def generate_signed_leaf(
        self,
        common_name: str,
        organization: str,
        dns_names: list[str],
        ca_cert_pem: bytes,
        ca_key_pem: bytes,
    ) -> tuple[bytes, bytes]:
        """
        Generate a leaf certificate signed by the given CA.

        Args:
            common_name: Subject common name
            organization: Subject organization
            dns_names: Subject alternative DNS names
            ca_cert_pem: Issuing CA certificate
            ca_key_pem: Issuing CA private key

        Returns:
            Tuple of (certificate PEM, private key PEM)

        Raises:
            CryptoError: If the CA material cannot be parsed or signing fails
        """
        try:
            ca_cert = x509.load_pem_x509_certificate(ca_cert_pem)
            ca_key = serialization.load_pem_private_key(ca_key_pem, password=None)
        except (ValueError, TypeError) as e:
            raise CryptoError(f"Malformed CA material: {e}", cause=e) from e

        try:
            key = self._new_private_key()
            subject = x509.Name(
                [
                    x509.NameAttribute(NameOID.COMMON_NAME, common_name),
                    x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization),
                ]
            )
            now = datetime.now(UTC)

            cert = (
                x509.CertificateBuilder()
                .subject_name(subject)
                .issuer_name(ca_cert.subject)
                .public_key(key.public_key())
                .serial_number(x509.random_serial_number())
                .not_valid_before(now)
                .not_valid_after(now + timedelta(days=LEAF_VALIDITY_DAYS))
                .add_extension(
                    x509.BasicConstraints(ca=False, path_length=None), critical=True
                )
                .add_extension(
                    x509.KeyUsage(
                        digital_signature=True,
                        content_commitment=False,
                        key_encipherment=True,
                        data_encipherment=False,
                        key_agreement=False,
                        key_cert_sign=False,
                        crl_sign=False,
                        encipher_only=False,
                        decipher_only=False,
                    ),
                    critical=True,
                )
                .add_extension(
                    x509.ExtendedKeyUsage(
                        [ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.SERVER_AUTH]
                    ),
                    critical=False,
                )
                .add_extension(
                    x509.SubjectAlternativeName(
                        [x509.DNSName(name) for name in dns_names]
                    ),
                    critical=False,
                )
                .sign(ca_key, hashes.SHA256())
            )
        except (ValueError, TypeError) as e:
            raise CryptoError(
                f"Failed to sign certificate {common_name}: {e}", cause=e
            ) from e

        return cert.public_bytes(serialization.Encoding.PEM), _private_key_pem(key)
