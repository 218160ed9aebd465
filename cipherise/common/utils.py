"""Small helper utilities used by the protocol and storage layers.

Provided:
- hexe(b: bytes) -> str: hex encode bytes to a lowercase string
- hexd(s: str) -> bytes: hex decode a string to bytes
- sha256_digest(*parts) -> bytes: SHA-256 over the UTF-8 concatenation of parts
- normalize_base_url(url) -> str: trimmed URL with exactly one trailing slash
"""

import hashlib
from typing import Union


def hexe(b: bytes) -> str:
	"""Hex-encode bytes and return a lowercase ASCII string."""
	return bytes(b).hex()


def hexd(s: str) -> bytes:
	"""Decode a hex ASCII string into bytes."""
	return bytes.fromhex(s)


def sha256_digest(*parts: Union[bytes, str]) -> bytes:
	"""Return the SHA-256 digest of the ordered concatenation of `parts`."""
	h = hashlib.sha256()
	for part in parts:
		if isinstance(part, str):
			part = part.encode("utf-8")
		h.update(part)
	return h.digest()


def normalize_base_url(url: str) -> str:
	"""Trim `url` and make sure it ends in exactly one slash.

	Raises ValueError for an empty URL.
	"""
	url = url.strip()
	if not url:
		raise ValueError("Expected non-empty URL!")
	return url.rstrip("/") + "/"
