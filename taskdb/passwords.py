from __future__ import annotations

import hashlib
import hmac
import os


SCRYPT_KEYLEN = 32
SCRYPT_COST = 2**16
SCRYPT_BLOCK_SIZE = 8
SCRYPT_PARALLELIZATION = 2
SCRYPT_MAXMEM = 128 * SCRYPT_COST * SCRYPT_BLOCK_SIZE * SCRYPT_PARALLELIZATION * 2


def _derive(password: str, salt: bytes) -> bytes:
    return hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt,
        n=SCRYPT_COST,
        r=SCRYPT_BLOCK_SIZE,
        p=SCRYPT_PARALLELIZATION,
        maxmem=SCRYPT_MAXMEM,
        dklen=SCRYPT_KEYLEN,
    )


def scrypt_hash(password: str) -> str:
    """Return `<salt_hex>:<key_hex>`, the format the API's login check expects."""
    salt = os.urandom(16)
    return f"{salt.hex()}:{_derive(password, salt).hex()}"


def compare_hash(password: str, stored: str) -> bool:
    salt_hex, sep, key_hex = stored.partition(":")
    if not sep:
        return False
    try:
        salt, key = bytes.fromhex(salt_hex), bytes.fromhex(key_hex)
    except ValueError:
        return False
    return hmac.compare_digest(_derive(password, salt), key)
