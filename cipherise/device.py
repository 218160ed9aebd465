"""Devices enrolled against a service."""

from typing import Dict, Mapping

from cryptography.hazmat.primitives.asymmetric import rsa

from .storage.codec import decode_record, encode_record, object_to_public_key_map, public_key_map_to_object


class Device:
    """A user's enrolled device: identifier, friendly name and per-level public keys.

    Devices are snapshots returned by Service.get_user_devices(); they are
    never modified locally.
    """

    HEADER = "CiphDvce"

    def __init__(self, id: str, name: str, keys: Mapping[int, rsa.RSAPublicKey]):
        self.id = id
        self.name = name
        self.keys: Dict[int, rsa.RSAPublicKey] = dict(sorted(keys.items()))

    def serialize(self) -> bytes:
        """Serialize this device to bytes."""
        return encode_record([
            Device.HEADER,
            self.id,
            self.name,
            public_key_map_to_object(self.keys),
        ])

    @classmethod
    def deserialize(cls, data: bytes) -> "Device":
        """Restore a device produced by serialize()."""
        arr = decode_record(data, "device", cls.HEADER, (4,))
        return cls(arr[1], arr[2], object_to_public_key_map(arr[3]))

    def __eq__(self, other):
        if not isinstance(other, Device):
            return NotImplemented
        return (
            self.id == other.id
            and self.name == other.name
            and public_key_map_to_object(self.keys) == public_key_map_to_object(other.keys)
        )

    __hash__ = None

    def __repr__(self):
        return f"Device(id={self.id!r}, name={self.name!r}, levels={list(self.keys)})"
