import pytest

from automation.cipher import Cipher, generate_key
from automation.errors import DecryptionError, EncryptionMisconfigured
from automation.models import CipherBundle


@pytest.fixture
def cipher() -> Cipher:
    return Cipher(generate_key())


def test_round_trip(cipher: Cipher) -> None:
    bundle = cipher.encrypt("4111111111111111")
    assert cipher.decrypt(bundle) == "4111111111111111"


def test_same_plaintext_gets_fresh_iv(cipher: Cipher) -> None:
    first = cipher.encrypt("123")
    second = cipher.encrypt("123")
    assert first.iv != second.iv
    assert first.ciphertext != second.ciphertext
    assert len(bytes.fromhex(first.iv)) == 16


def test_unicode_and_empty_plaintext(cipher: Cipher) -> None:
    assert cipher.decrypt(cipher.encrypt("")) == ""
    assert cipher.decrypt(cipher.encrypt("José Müller")) == "José Müller"


@pytest.mark.parametrize("key", [None, "", "not-hex", "ab" * 16, "ab" * 33])
def test_bad_key_is_rejected_at_construction(key) -> None:
    with pytest.raises(EncryptionMisconfigured):
        Cipher(key)


def test_iv_of_wrong_length(cipher: Cipher) -> None:
    bundle = cipher.encrypt("secret")
    with pytest.raises(DecryptionError):
        cipher.decrypt(CipherBundle(ciphertext=bundle.ciphertext, iv=bundle.iv[:-2]))


def test_truncated_ciphertext(cipher: Cipher) -> None:
    bundle = cipher.encrypt("secret")
    with pytest.raises(DecryptionError):
        cipher.decrypt(CipherBundle(ciphertext=bundle.ciphertext[:-2], iv=bundle.iv))


def test_non_hex_bundle(cipher: Cipher) -> None:
    with pytest.raises(DecryptionError):
        cipher.decrypt(CipherBundle(ciphertext="zz", iv="zz"))


def test_payment_fields_encrypt_number_and_cvv_only(cipher: Cipher) -> None:
    payment = cipher.encrypt_payment_fields(
        card_number="4111111111111111",
        cvv="123",
        expiry_month="12",
        expiry_year="2027",
    )
    assert payment.expiry_month == "12"
    assert payment.expiry_year == "2027"
    assert payment.card_number.iv != payment.cvv.iv
    assert "4111111111111111" not in payment.model_dump_json()
    assert cipher.decrypt_payment_fields(payment) == {
        "card_number": "4111111111111111",
        "cvv": "123",
        "expiry_month": "12",
        "expiry_year": "2027",
    }
