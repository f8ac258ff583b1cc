import pytest

from soulxbot.core.errors import AuthenticationFailed
from soulxbot.core.vault import (
    NONCE_SIZE,
    decrypt,
    decrypt_token,
    derive_key,
    encrypt,
    encrypt_token,
)


class TestTokenEncryption:
    @pytest.mark.parametrize("token", ["", "abc123", "oauth:" + "x" * 512, "tökén ✓"])
    def test_round_trip(self, token):
        assert decrypt_token(encrypt_token(token, "secret"), "secret") == token

    def test_round_trip_raw_bytes(self):
        data = bytes(range(256))
        assert decrypt(encrypt(data, "secret"), "secret") == data

    def test_nonce_is_random_and_prepended(self):
        first = encrypt_token("same-token", "secret")
        second = encrypt_token("same-token", "secret")
        assert first != second
        assert first[:NONCE_SIZE] != second[:NONCE_SIZE]
        assert decrypt_token(first, "secret") == decrypt_token(second, "secret")

    def test_ciphertext_does_not_contain_plaintext(self):
        assert b"super-secret-token" not in encrypt_token("super-secret-token", "secret")

    def test_wrong_passphrase_fails(self):
        ciphertext = encrypt_token("token", "passphrase-one")
        with pytest.raises(AuthenticationFailed):
            decrypt_token(ciphertext, "passphrase-two")

    def test_tampered_ciphertext_fails(self):
        ciphertext = bytearray(encrypt_token("token", "secret"))
        ciphertext[-1] ^= 0x01
        with pytest.raises(AuthenticationFailed):
            decrypt_token(bytes(ciphertext), "secret")

    def test_tampered_nonce_fails(self):
        ciphertext = bytearray(encrypt_token("token", "secret"))
        ciphertext[0] ^= 0x01
        with pytest.raises(AuthenticationFailed):
            decrypt_token(bytes(ciphertext), "secret")

    @pytest.mark.parametrize("ciphertext", [b"", b"short", b"\x00" * NONCE_SIZE])
    def test_truncated_ciphertext_fails(self, ciphertext):
        with pytest.raises(AuthenticationFailed):
            decrypt(ciphertext, "secret")


class TestKeyDerivation:
    def test_key_is_deterministic_and_256_bit(self):
        assert derive_key("secret") == derive_key("secret")
        assert len(derive_key("secret")) == 32

    def test_different_passphrases_give_different_keys(self):
        assert derive_key("secret") != derive_key("Secret")
