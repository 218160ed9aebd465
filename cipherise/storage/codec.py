"""Binary session serialization.

Sessions are stored as a msgpack array whose first element is a fixed
ASCII header naming the entity type, optionally followed by a version tag.
Strings are packed as msgpack str and bytes as msgpack bin, matching the
format written by the other Cipherise SDKs, so buffers can be exchanged
between them.

decode_record() performs the structural checks shared by every entity:
array shape, arity, header and (when given) version. Failures raise
DeserializationError naming the entity and what was wrong.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence

import msgpack
from cryptography.hazmat.primitives.asymmetric import rsa

from ..common.errors import DeserializationError, ProtocolError
from ..crypto.pki import export_public_pem, load_public_pem


def encode_record(values: Sequence[Any]) -> bytes:
    """Pack an ordered tuple of values into bytes."""
    return msgpack.packb(list(values), use_bin_type=True)


def decode_record(
    data: bytes,
    entity: str,
    header: str,
    arities: Sequence[int],
    version: Optional[str] = None,
) -> List[Any]:
    """Unpack and validate a serialized record.

    Args:
        data: The serialized buffer
        entity: Entity name used in error messages (e.g. "enrollment")
        header: The header expected as the first element
        arities: Accepted array lengths
        version: If given, the version expected as the second element

    Returns:
        The decoded array

    Raises:
        DeserializationError: If any check fails
    """
    try:
        arr = msgpack.unpackb(bytes(data), raw=False, strict_map_key=False)
    except (msgpack.ExtraData, msgpack.FormatError, msgpack.StackError, ValueError, TypeError) as e:
        raise DeserializationError(
            f"Attempted to deserialize {entity}, but buffer was invalid"
        ) from e

    if not isinstance(arr, list):
        raise DeserializationError(f"Attempted to deserialize {entity}, but buffer was invalid")

    if len(arr) not in arities:
        raise DeserializationError(
            f"Attempted to deserialize {entity}, but incorrect number of components"
        )

    if arr[0] != header:
        raise DeserializationError(f"Attempted to deserialize {entity}, but header not found")

    if version is not None and arr[1] != version:
        raise DeserializationError(f"Attempted to deserialize {entity}, but wrong version")

    return arr


def public_key_map_to_object(keys: Mapping[int, rsa.RSAPublicKey]) -> Dict[str, str]:
    """Convert {level: key} into the {"level": PEM} object used on the wire."""
    return {str(level): export_public_pem(keys[level]) for level in sorted(keys)}


def object_to_public_key_map(obj: Optional[Mapping[Any, str]]) -> Dict[int, rsa.RSAPublicKey]:
    """Convert a {"level": PEM} object back into {level: key}, ordered by level.

    Raises:
        ProtocolError: If a level is not an integer or a key is not RSA PEM
    """
    if not obj:
        return {}
    keys = {}
    for level, pem in obj.items():
        try:
            keys[int(level)] = load_public_pem(pem)
        except (ValueError, TypeError) as e:
            raise ProtocolError(f"Invalid public key for level {level!r}: {e}") from e
    return dict(sorted(keys.items()))
