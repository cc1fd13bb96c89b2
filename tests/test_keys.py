import pytest
from eth_account import Account
from eth_account.messages import encode_defunct

from wallet import (
    KdfParams,
    UnlockedWallet,
    decrypt_wallet_data,
    encrypt_wallet_data,
    generate_wallet,
    hash_password,
    import_mnemonic,
    import_private_key,
    sign_message,
    verify_password,
)

from conftest import FAST_KDF, KEY_A

# BIP-39 test vector
ABANDON = "abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon about"


def test_generated_wallet_restores_from_its_phrase():
    wallet = generate_wallet("Fresh")
    assert len(wallet.mnemonic.split()) == 12
    assert import_mnemonic(wallet.mnemonic).address == wallet.address


def test_generate_rejects_odd_word_counts():
    with pytest.raises(ValueError):
        generate_wallet(word_count=15)


def test_import_mnemonic_normalizes_whitespace():
    wallet = import_mnemonic("  " + ABANDON.replace(" ", "   ") + "\n")
    assert wallet.address == "0x9858EfFD232B4033E47d90003D41EC34EcaEda94"
    assert wallet.mnemonic == ABANDON


def test_import_mnemonic_rejects_bad_checksum():
    with pytest.raises(ValueError):
        import_mnemonic(ABANDON.replace("about", "abandon"))


def test_import_private_key_with_or_without_prefix():
    assert import_private_key(KEY_A).address == import_private_key(KEY_A[2:]).address
    with pytest.raises(ValueError):
        import_private_key("0xnothex")


def test_wallet_dict_round_trip():
    wallet = import_private_key(KEY_A, name="Main")
    assert UnlockedWallet.from_dict(wallet.to_dict()) == wallet


def test_signature_recovers_signer():
    wallet = import_private_key(KEY_A)
    signature = sign_message(wallet, "hello")
    assert Account.recover_message(encode_defunct(text="hello"), signature=signature) == wallet.address


def test_password_hash_verifies_only_the_password():
    hash_hex, salt_hex = hash_password("secret", FAST_KDF)
    assert verify_password("secret", hash_hex, salt_hex, FAST_KDF)
    assert not verify_password("Secret", hash_hex, salt_hex, FAST_KDF)
    assert not verify_password("secret", "zz", salt_hex, FAST_KDF)


def test_record_encryption_is_salted_per_record():
    first = encrypt_wallet_data("payload", "secret", FAST_KDF)
    second = encrypt_wallet_data("payload", "secret", FAST_KDF)
    assert first != second
    assert decrypt_wallet_data(first, "secret", FAST_KDF) == "payload"


def test_record_decryption_failures_are_value_errors():
    payload = encrypt_wallet_data("payload", "secret", FAST_KDF)
    with pytest.raises(ValueError):
        decrypt_wallet_data(payload, "wrong", FAST_KDF)
    with pytest.raises(ValueError):
        decrypt_wallet_data("v2:" + payload[3:], "secret", FAST_KDF)
    with pytest.raises(ValueError):
        decrypt_wallet_data("garbage", "secret", FAST_KDF)


def test_kdf_params_from_stored_dict():
    assert KdfParams.from_dict(FAST_KDF.to_dict()) == FAST_KDF
