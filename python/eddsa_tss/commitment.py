"""Hash commitments.

A commitment to `value` is SHA-256 over the minimal big-endian encodings of
`value` (read as a big-endian integer) and a 256-bit random blind factor. The
commitment and the blind factor are arbitrary-precision integers and are
serialized as minimal big-endian byte strings.
"""

import hashlib
from secrets import randbits
from typing import NamedTuple, Optional

from .util import int_from_bytes, int_to_bytes_minimal

BLIND_FACTOR_BITS = 256


class Commitment(NamedTuple):
    com: int
    blind_factor: int

    def com_bytes(self) -> bytes:
        return int_to_bytes_minimal(self.com)

    def blind_factor_bytes(self) -> bytes:
        return int_to_bytes_minimal(self.blind_factor)


def _hash_commitment(value: bytes, blind_factor: int) -> int:
    data = int_to_bytes_minimal(int_from_bytes(value)) + int_to_bytes_minimal(
        blind_factor
    )
    return int_from_bytes(hashlib.sha256(data).digest())


def commit(value: bytes, blind_factor: Optional[int] = None) -> Commitment:
    if blind_factor is None:
        blind_factor = randbits(BLIND_FACTOR_BITS)
    return Commitment(_hash_commitment(value, blind_factor), blind_factor)


def open_commitment(com: int, blind_factor: int, claimed_value: bytes) -> bool:
    # A negative blind factor has no encoding, so it cannot open anything.
    if blind_factor < 0:
        return False
    return _hash_commitment(claimed_value, blind_factor) == com


def commitment_from_bytes(b: bytes) -> int:
    return int_from_bytes(b)
