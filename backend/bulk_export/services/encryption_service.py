"""Hybrid encryption for export files.

Each payload gets a fresh 256-bit AES-GCM key; the output is
``nonce | ciphertext | tag``. The AES key is wrapped with RSA-OAEP
(SHA-256) under the recipient's public key, using the file name as the
OAEP label so a wrapped key cannot be replayed against another file.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from bulk_export.core.config import settings
from bulk_export.core.exceptions import EncryptionError


logger = logging.getLogger(__name__)

MAX_PLAINTEXT_BYTES = 64 * 1024 * 1024 * 1024
NONCE_SIZE = 12
KEY_SIZE = 32


def _oaep(label: str) -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=label.encode("utf-8"),
    )


def load_public_key(pem: str | bytes) -> rsa.RSAPublicKey:
    data = pem.encode("utf-8") if isinstance(pem, str) else pem
    try:
        key = serialization.load_pem_public_key(data)
    except ValueError as e:
        raise EncryptionError(f"Invalid public key: {e}") from e
    if not isinstance(key, rsa.RSAPublicKey):
        raise EncryptionError("Public key is not an RSA key")
    return key


def load_private_key(pem: str | bytes) -> rsa.RSAPrivateKey:
    data = pem.encode("utf-8") if isinstance(pem, str) else pem
    key = serialization.load_pem_private_key(data, password=None)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise EncryptionError("Private key is not an RSA key")
    return key


def resolve_public_key(org_public_key: str | None) -> rsa.RSAPublicKey:
    """The organization's own key, falling back to the configured default."""
    if org_public_key and org_public_key.strip():
        return load_public_key(org_public_key)

    path = settings.ATO_PUBLIC_KEY_FILE
    if not path:
        raise EncryptionError("No public key available: organization has none and ATO_PUBLIC_KEY_FILE is unset")
    try:
        return load_public_key(Path(path).read_bytes())
    except OSError as e:
        raise EncryptionError(f"Unable to read ATO_PUBLIC_KEY_FILE: {e}") from e


def encrypt_bytes(public_key: rsa.RSAPublicKey, plaintext: bytes, label: str) -> tuple[bytes, bytes]:
    """
    Encrypt a payload for the holder of ``public_key``.

    Args:
        public_key: Recipient RSA public key
        plaintext: Bytes to encrypt
        label: OAEP label, normally the output file name

    Returns:
        (ciphertext, wrapped_key)

    Raises:
        EncryptionError: payload too large or a crypto primitive failed
    """
    if len(plaintext) > MAX_PLAINTEXT_BYTES:
        raise EncryptionError("Max file size of 64 GB exceeded. Unable to encrypt file.")

    key = AESGCM.generate_key(bit_length=KEY_SIZE * 8)
    nonce = os.urandom(NONCE_SIZE)
    try:
        ciphertext = nonce + AESGCM(key).encrypt(nonce, plaintext, None)
        wrapped_key = public_key.encrypt(key, _oaep(label))
    except (ValueError, TypeError) as e:
        logger.exception("Encryption failed for %s", label)
        raise EncryptionError(f"Unable to encrypt {label}: {e}") from e
    return ciphertext, wrapped_key


def decrypt_bytes(
    private_key: rsa.RSAPrivateKey,
    ciphertext: bytes,
    wrapped_key: bytes,
    label: str,
) -> bytes:
    """Inverse of :func:`encrypt_bytes`."""
    try:
        key = private_key.decrypt(wrapped_key, _oaep(label))
        nonce, body = ciphertext[:NONCE_SIZE], ciphertext[NONCE_SIZE:]
        return AESGCM(key).decrypt(nonce, body, None)
    except (ValueError, InvalidTag) as e:
        raise EncryptionError(f"Unable to decrypt {label}: {e}") from e
