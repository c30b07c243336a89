"""
PII Encryption at Rest Module

Field-level encryption for sensitive user data (SSNs). Uses AES-256-CBC from
the cryptography library with a fresh random IV per value, stored alongside
the ciphertext as "iv:ciphertext" in lowercase hex.
"""

import os
import hashlib
import logging
import re
from abc import ABC, abstractmethod
from typing import Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes


logger = logging.getLogger(__name__)

IV_SIZE = 16
ENCRYPTED_VALUE_PATTERN = re.compile(r'^[0-9a-f]{32}:[0-9a-f]+$')


class EncryptionProvider(ABC):
    """Abstract base class for encryption providers"""

    @abstractmethod
    def encrypt(self, plaintext: str) -> str:
        """Encrypt plaintext and return ciphertext"""
        pass

    @abstractmethod
    def decrypt(self, ciphertext: str) -> str:
        """Decrypt ciphertext and return plaintext"""
        pass


class AESCBCEncryptionProvider(EncryptionProvider):
    """AES-256-CBC with PKCS7 padding; output is iv_hex:ciphertext_hex"""

    def __init__(self, master_key: Union[str, bytes]):
        if isinstance(master_key, str):
            master_key = master_key.encode('utf-8')
        if not master_key:
            raise ValueError("Encryption key must not be empty")

        # Derive 32-byte key from master key using SHA-256
        self.key = hashlib.sha256(master_key).digest()

    def encrypt(self, plaintext: str) -> str:
        """Encrypt plaintext using a random 16-byte IV"""
        if not isinstance(plaintext, str):
            plaintext = str(plaintext)

        iv = os.urandom(IV_SIZE)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode('utf-8')) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self.key), modes.CBC(iv)).encryptor()
        encrypted_bytes = encryptor.update(padded) + encryptor.finalize()

        return f"{iv.hex()}:{encrypted_bytes.hex()}"

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt an iv_hex:ciphertext_hex value"""
        if not is_encrypted_value(ciphertext):
            raise ValueError("Value is not in iv:ciphertext format")

        iv_hex, data_hex = ciphertext.split(":", 1)
        try:
            decryptor = Cipher(algorithms.AES(self.key), modes.CBC(bytes.fromhex(iv_hex))).decryptor()
            padded = decryptor.update(bytes.fromhex(data_hex)) + decryptor.finalize()

            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode('utf-8')
        except ValueError as e:
            logger.error(f"Failed to decrypt data: {e}")
            raise ValueError(f"Failed to decrypt data: {e}")


class SSNCipher:
    """Encrypts social security numbers before they reach storage"""

    def __init__(self, provider: EncryptionProvider):
        self.provider = provider

    @classmethod
    def from_key(cls, encryption_key: str) -> 'SSNCipher':
        return cls(AESCBCEncryptionProvider(encryption_key))

    def encrypt(self, ssn: str) -> str:
        return self.provider.encrypt(ssn)

    def decrypt(self, encrypted_ssn: str) -> str:
        return self.provider.decrypt(encrypted_ssn)


def is_encrypted_value(value: str) -> bool:
    """Check whether a value matches the iv:ciphertext storage format"""
    return isinstance(value, str) and bool(ENCRYPTED_VALUE_PATTERN.match(value))
