"""Payload encryption for the hub's secure passthrough channel.

The handshake exchanges an RSA public key for an AES-128 key and IV,
encrypted with that public key. Every later request and response body is
AES-128-CBC encrypted with PKCS7 padding and base64 encoded.
"""

from __future__ import annotations

import base64
import binascii

from cryptography.hazmat.primitives import padding, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.padding import PKCS1v15
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import TapoHttpResponseError

RSA_KEY_SIZE = 1024
AES_KEY_LENGTH = 16


class TapoKeyPair:
    """RSA key pair used once per handshake."""

    def __init__(self) -> None:
        """Generate a fresh key pair."""
        self._private_key = rsa.generate_private_key(
            public_exponent=65537, key_size=RSA_KEY_SIZE
        )

    @property
    def public_key_pem(self) -> str:
        """Return the public key in PEM format, as sent in the handshake."""
        return (
            self._private_key.public_key()
            .public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )
            .decode("utf-8")
        )

    def decrypt_session_key(self, encrypted_key: str) -> TapoCipher:
        """Decrypt the handshake key and return the session cipher.

        Args:
            encrypted_key: Base64 RSA-encrypted key material from the hub.

        Returns:
            Cipher built from the first 16 bytes (key) and next 16 (IV).

        Raises:
            TapoHttpResponseError: If the key cannot be decoded.

        """
        try:
            key_material = self._private_key.decrypt(
                base64.b64decode(encrypted_key), PKCS1v15()
            )
        except (ValueError, binascii.Error) as err:
            error_msg = f"Failed to decrypt handshake key: {err}"
            raise TapoHttpResponseError(error_msg) from err

        if len(key_material) < 2 * AES_KEY_LENGTH:
            error_msg = f"Handshake key too short: {len(key_material)} bytes"
            raise TapoHttpResponseError(error_msg)

        return TapoCipher(
            key_material[:AES_KEY_LENGTH],
            key_material[AES_KEY_LENGTH : 2 * AES_KEY_LENGTH],
        )


class TapoCipher:
    """AES-128-CBC cipher for secure passthrough payloads."""

    def __init__(self, key: bytes, iv: bytes) -> None:
        """Initialize with the session key and IV."""
        self._key = key
        self._iv = iv

    def encrypt(self, payload: str) -> str:
        """Encrypt a JSON payload and return it base64 encoded."""
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(payload.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(self._iv)).encryptor()
        encrypted = encryptor.update(padded) + encryptor.finalize()
        return base64.b64encode(encrypted).decode("utf-8")

    def decrypt(self, payload: str) -> str:
        """Decrypt a base64 payload.

        Raises:
            TapoHttpResponseError: If the payload is not valid ciphertext.

        """
        try:
            encrypted = base64.b64decode(payload)
            decryptor = Cipher(
                algorithms.AES(self._key), modes.CBC(self._iv)
            ).decryptor()
            padded = decryptor.update(encrypted) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plain = unpadder.update(padded) + unpadder.finalize()
            return plain.decode("utf-8")
        except (ValueError, binascii.Error, UnicodeDecodeError) as err:
            error_msg = f"Failed to decrypt response: {err}"
            raise TapoHttpResponseError(error_msg) from err
