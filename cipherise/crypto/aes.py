"""AES-256 CFB mode helpers used by the payload envelope.

This module provides small helpers:
- generate_key / generate_iv (random material from the OS)
- encrypt_aes_cfb / decrypt_aes_cfb (bytes in/out)

CFB is a stream mode, so no padding is applied and the ciphertext has
the same length as the plaintext.
"""

import os

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.backends import default_backend


KEY_SIZE = 32
IV_SIZE = 16


def generate_key() -> bytes:
	"""Return a fresh random 256-bit AES key."""
	return os.urandom(KEY_SIZE)


def generate_iv() -> bytes:
	"""Return a fresh random 128-bit IV."""
	return os.urandom(IV_SIZE)


def _validate(key: bytes, iv: bytes) -> None:
	if not isinstance(key, (bytes, bytearray)):
		raise TypeError("key must be bytes")
	if len(key) != KEY_SIZE:
		raise ValueError("invalid AES key size (expected 32 bytes)")
	if len(iv) != IV_SIZE:
		raise ValueError("invalid AES IV size (expected 16 bytes)")


def encrypt_aes_cfb(key: bytes, iv: bytes, plaintext: bytes) -> bytes:
	"""Encrypt `plaintext` using AES-256-CFB. Returns raw ciphertext bytes."""
	_validate(key, iv)
	cipher = Cipher(algorithms.AES(key), modes.CFB(iv), backend=default_backend())
	encryptor = cipher.encryptor()
	return encryptor.update(plaintext) + encryptor.finalize()


def decrypt_aes_cfb(key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
	"""Decrypt raw `ciphertext` using AES-256-CFB. Returns plaintext bytes."""
	_validate(key, iv)
	cipher = Cipher(algorithms.AES(key), modes.CFB(iv), backend=default_backend())
	decryptor = cipher.decryptor()
	return decryptor.update(ciphertext) + decryptor.finalize()


__all__ = [
	"KEY_SIZE",
	"IV_SIZE",
	"generate_key",
	"generate_iv",
	"encrypt_aes_cfb",
	"decrypt_aes_cfb",
]
