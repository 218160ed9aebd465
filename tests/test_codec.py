"""
Tests for the binary session codec and Device serialization.
"""

import msgpack
import pytest

from cipherise.common.errors import DeserializationError
from cipherise.crypto.pki import export_public_pem
from cipherise.device import Device
from cipherise.storage.codec import decode_record, encode_record, public_key_map_to_object


def test_strings_and_bytes_keep_their_types() -> None:
    packed = encode_record(["CiphTest", b"\x00\x01", None, 3])
    assert msgpack.unpackb(packed, raw=False) == ["CiphTest", b"\x00\x01", None, 3]
    # bin 8 marker for the bytes element
    assert b"\xc4\x02\x00\x01" in packed


def test_decode_checks_shape_header_and_version() -> None:
    good = encode_record(["CiphTest", "6.0.0", "x"])
    assert decode_record(good, "test", "CiphTest", (3,), "6.0.0") == ["CiphTest", "6.0.0", "x"]

    with pytest.raises(DeserializationError, match="test, but buffer was invalid"):
        decode_record(msgpack.packb({"a": 1}), "test", "CiphTest", (3,))
    with pytest.raises(DeserializationError, match="incorrect number of components"):
        decode_record(good, "test", "CiphTest", (4,))
    with pytest.raises(DeserializationError, match="header not found"):
        decode_record(good, "test", "CiphOther", (3,))
    with pytest.raises(DeserializationError, match="wrong version"):
        decode_record(good, "test", "CiphTest", (3,), "5.0.0")


def test_decode_rejects_garbage() -> None:
    with pytest.raises(DeserializationError, match="buffer was invalid"):
        decode_record(b"\xc1", "test", "CiphTest", (3,))


def test_key_map_uses_string_levels_in_order(device_key, other_key) -> None:
    obj = public_key_map_to_object({2: other_key.public_key(), 1: device_key.public_key()})
    assert list(obj) == ["1", "2"]
    assert obj["1"] == export_public_pem(device_key)


def test_device_roundtrip(device_key, other_key) -> None:
    device = Device("dev-1", "Alice's phone", {1: device_key.public_key(), 2: other_key.public_key()})
    restored = Device.deserialize(device.serialize())

    assert restored == device
    assert list(restored.keys) == [1, 2]


def test_device_equality_covers_keys(device_key, other_key) -> None:
    a = Device("dev-1", "phone", {1: device_key.public_key()})
    assert a != Device("dev-1", "phone", {1: other_key.public_key()})
    assert a != Device("dev-2", "phone", {1: device_key.public_key()})
    assert a != Device("dev-1", "tablet", {1: device_key.public_key()})


def test_device_wire_layout(device_key) -> None:
    device = Device("dev-1", "phone", {1: device_key.public_key()})
    arr = msgpack.unpackb(device.serialize(), raw=False)
    assert arr == ["CiphDvce", "dev-1", "phone", {"1": export_public_pem(device_key)}]


def test_device_rejects_wrong_header(device_key) -> None:
    data = encode_record(["CiphSrvc", "dev-1", "phone", {}])
    with pytest.raises(DeserializationError, match="device, but header not found"):
        Device.deserialize(data)
