"""AES-256-CBC protection for payment fields before they are persisted."""

from __future__ import annotations

import binascii
import os
from typing import Dict, Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher as _CryptoCipher, algorithms, modes

from .errors import DecryptionError, EncryptionMisconfigured
from .models import CipherBundle, EncryptedPayment

KEY_BYTES = 32
IV_BYTES = 16
BLOCK_BITS = 128


def _parse_key(key_hex: Optional[str]) -> bytes:
    if not key_hex:
        raise EncryptionMisconfigured("Encryption key is not configured (set AUTOMATION_ENCRYPTION_KEY)")
    try:
        key = bytes.fromhex(key_hex.strip())
    except ValueError as exc:
        raise EncryptionMisconfigured("Encryption key must be hex encoded") from exc
    if len(key) != KEY_BYTES:
        raise EncryptionMisconfigured(
            f"Encryption key must be {KEY_BYTES} bytes ({KEY_BYTES * 2} hex chars), got {len(key)} bytes"
        )
    return key


def generate_key() -> str:
    return os.urandom(KEY_BYTES).hex()


class Cipher:
    """Symmetric cipher keyed once at startup.

    Every ``encrypt`` call draws a fresh random IV, so encrypting the same
    plaintext twice yields different bundles.  CBC carries no authentication
    tag; a wrong key is detected only when padding or UTF-8 decoding fails.
    """

    def __init__(self, key_hex: Optional[str]) -> None:
        self._key = _parse_key(key_hex)

    def encrypt(self, plaintext: str) -> CipherBundle:
        iv = os.urandom(IV_BYTES)
        padder = padding.PKCS7(BLOCK_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = _CryptoCipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return CipherBundle(ciphertext=ciphertext.hex(), iv=iv.hex())

    def decrypt(self, bundle: CipherBundle) -> str:
        try:
            iv = bytes.fromhex(bundle.iv)
            ciphertext = bytes.fromhex(bundle.ciphertext)
        except (ValueError, binascii.Error) as exc:
            raise DecryptionError("Cipher bundle is not valid hex") from exc
        if len(iv) != IV_BYTES:
            raise DecryptionError(f"IV must be {IV_BYTES} bytes, got {len(iv)}")
        if not ciphertext or len(ciphertext) % (BLOCK_BITS // 8):
            raise DecryptionError("Ciphertext length is not a multiple of the block size")

        decryptor = _CryptoCipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
        try:
            data = unpadder.update(padded) + unpadder.finalize()
        except ValueError as exc:
            raise DecryptionError("Invalid padding (wrong key or tampered ciphertext)") from exc
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionError("Decrypted data is not valid UTF-8 (wrong key?)") from exc

    def encrypt_payment_fields(
        self,
        *,
        card_number: str,
        cvv: str,
        expiry_month: str,
        expiry_year: str,
    ) -> EncryptedPayment:
        return EncryptedPayment(
            card_number=self.encrypt(card_number),
            cvv=self.encrypt(cvv),
            expiry_month=expiry_month,
            expiry_year=expiry_year,
        )

    def decrypt_payment_fields(self, payment: EncryptedPayment) -> Dict[str, str]:
        return {
            "card_number": self.decrypt(payment.card_number),
            "cvv": self.decrypt(payment.cvv),
            "expiry_month": payment.expiry_month,
            "expiry_year": payment.expiry_year,
        }
