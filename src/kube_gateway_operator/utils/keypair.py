"""
JWT signing keypair generation.

The gateway signs and verifies its JWT tokens with an RSA keypair kept in a
Secret next to the GateServer. Keys are generated fresh on every call and
checked with a sign/verify round trip before they are handed out.
"""

import logging

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from ..constants import DEFAULT_JWT_KEY_SIZE, MINIMUM_JWT_KEY_SIZE
from ..errors import KeyGenerationError

logger = logging.getLogger(__name__)

PUBLIC_EXPONENT = 65537

_PROBE_MESSAGE = b"kube-gateway keypair self-check"


def _validate_keypair(private_key: rsa.RSAPrivateKey) -> None:
    """Check that the private and public halves belong together."""
    signature = private_key.sign(
        _PROBE_MESSAGE,
        padding.PKCS1v15(),
        hashes.SHA256(),
    )
    private_key.public_key().verify(
        signature,
        _PROBE_MESSAGE,
        padding.PKCS1v15(),
        hashes.SHA256(),
    )


def generate_keypair(key_size: int = DEFAULT_JWT_KEY_SIZE) -> tuple[bytes, bytes]:
    """
    Generate an RSA keypair for signing gateway tokens.

    Args:
        key_size: Modulus size in bits, at least 4096

    Returns:
        Tuple of (private PEM, public PEM). The private half is PKCS#1
        ("RSA PRIVATE KEY"), the public half SubjectPublicKeyInfo ("PUBLIC KEY").

    Raises:
        KeyGenerationError: If the size is too small or generation fails
    """
    if key_size < MINIMUM_JWT_KEY_SIZE:
        raise KeyGenerationError(
            f"key size {key_size} is below the minimum of {MINIMUM_JWT_KEY_SIZE} bits"
        )

    try:
        private_key = rsa.generate_private_key(
            public_exponent=PUBLIC_EXPONENT, key_size=key_size
        )
        _validate_keypair(private_key)

        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    except InvalidSignature as e:
        raise KeyGenerationError("generated key failed validation", cause=e) from e
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyGenerationError(str(e), cause=e) from e

    logger.debug(f"Generated {key_size}-bit RSA keypair")
    return private_pem, public_pem
