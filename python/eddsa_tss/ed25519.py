"""Ed25519 group elements and scalars.

Thin wrappers around the libsodium Ed25519 primitives exposed by PyNaCl. Group
elements are kept in their canonical 32-byte compressed encoding, scalars as
Python integers reduced modulo the group order L.
"""

from __future__ import annotations

import hashlib
from secrets import randbelow
from typing import Any, Tuple, Union

from nacl import bindings

from .util import InvalidEncodingError

# Order of the prime-order subgroup generated by the base point.
L = 2**252 + 27742317777372353535851937790883648493

SCALAR_SIZE = 32
POINT_SIZE = 32

IDENTITY_BYTES = b"\x01" + b"\x00" * 31
BASE_BYTES = bytes.fromhex(
    "5866666666666666666666666666666666666666666666666666666666666666"
)


class Scalar:
    """An element of the scalar field Z/LZ."""

    __slots__ = ("_v",)

    def __init__(self, v: Union[int, "Scalar"] = 0) -> None:
        self._v = int(v) % L

    @staticmethod
    def _coerce(other: Any) -> int:
        if isinstance(other, Scalar):
            return other._v
        if isinstance(other, int):
            return other
        return NotImplemented

    def __int__(self) -> int:
        return self._v

    def __index__(self) -> int:
        return self._v

    def __add__(self, other: Any) -> Scalar:
        o = self._coerce(other)
        if o is NotImplemented:
            return NotImplemented
        return Scalar(self._v + o)

    __radd__ = __add__

    def __sub__(self, other: Any) -> Scalar:
        o = self._coerce(other)
        if o is NotImplemented:
            return NotImplemented
        return Scalar(self._v - o)

    def __rsub__(self, other: Any) -> Scalar:
        o = self._coerce(other)
        if o is NotImplemented:
            return NotImplemented
        return Scalar(o - self._v)

    def __mul__(self, other: Any) -> Any:
        if isinstance(other, GE):
            return other._mul(self)
        o = self._coerce(other)
        if o is NotImplemented:
            return NotImplemented
        return Scalar(self._v * o)

    def __rmul__(self, other: Any) -> Scalar:
        o = self._coerce(other)
        if o is NotImplemented:
            return NotImplemented
        return Scalar(self._v * o)

    def __truediv__(self, other: Any) -> Scalar:
        o = self._coerce(other)
        if o is NotImplemented:
            return NotImplemented
        if o % L == 0:
            raise ZeroDivisionError("division by zero scalar")
        return Scalar(self._v * pow(o, -1, L))

    def __neg__(self) -> Scalar:
        return Scalar(-self._v)

    def __pow__(self, e: int) -> Scalar:
        return Scalar(pow(self._v, e, L))

    def __eq__(self, other: Any) -> bool:
        o = self._coerce(other)
        if o is NotImplemented:
            return NotImplemented
        return self._v == o % L

    def __hash__(self) -> int:
        return hash(("Scalar", self._v))

    def __bool__(self) -> bool:
        return self._v != 0

    def __repr__(self) -> str:
        return f"Scalar({self._v:#x})"

    def to_bytes(self) -> bytes:
        return self._v.to_bytes(SCALAR_SIZE, byteorder="little")

    @staticmethod
    def from_bytes(b: bytes) -> Scalar:
        """Decode 32 little-endian bytes, reducing modulo L."""
        if len(b) != SCALAR_SIZE:
            raise InvalidEncodingError(f"Scalar must be {SCALAR_SIZE} bytes")
        return Scalar(int.from_bytes(b, byteorder="little"))

    @staticmethod
    def from_bytes_checked(b: bytes) -> Scalar:
        """Decode 32 little-endian bytes, rejecting non-canonical values."""
        if len(b) != SCALAR_SIZE:
            raise InvalidEncodingError(f"Scalar must be {SCALAR_SIZE} bytes")
        v = int.from_bytes(b, byteorder="little")
        if v >= L:
            raise InvalidEncodingError("Scalar is not reduced modulo the group order")
        return Scalar(v)

    @staticmethod
    def from_bytes_wide(b: bytes) -> Scalar:
        # Used for 64-byte hash outputs as in RFC 8032.
        return Scalar(int.from_bytes(b, byteorder="little"))

    @staticmethod
    def random() -> Scalar:
        return Scalar(randbelow(L - 1) + 1)

    @staticmethod
    def sum(*scalars: Scalar) -> Scalar:
        acc = 0
        for s in scalars:
            acc += int(s)
        return Scalar(acc)


class GE:
    """A group element, i.e., a point in the prime-order subgroup."""

    __slots__ = ("_b",)

    def __init__(self, b: bytes = IDENTITY_BYTES) -> None:
        # Callers outside this module should use from_bytes().
        self._b = bytes(b)

    @property
    def infinity(self) -> bool:
        return self._b == IDENTITY_BYTES

    def __add__(self, other: GE) -> GE:
        if not isinstance(other, GE):
            return NotImplemented
        if self.infinity:
            return other
        if other.infinity:
            return self
        return GE(bindings.crypto_core_ed25519_add(self._b, other._b))

    def __neg__(self) -> GE:
        if self.infinity:
            return self
        # Negation flips the sign of x, which is the top bit of the encoding.
        return GE(self._b[:31] + bytes([self._b[31] ^ 0x80]))

    def __sub__(self, other: GE) -> GE:
        if not isinstance(other, GE):
            return NotImplemented
        return self + (-other)

    def _mul(self, s: Scalar) -> GE:
        if self.infinity or not s:
            return GE()
        if self._b == BASE_BYTES:
            return GE(bindings.crypto_scalarmult_ed25519_base_noclamp(s.to_bytes()))
        return GE(bindings.crypto_scalarmult_ed25519_noclamp(s.to_bytes(), self._b))

    def __rmul__(self, other: Any) -> GE:
        if isinstance(other, int):
            other = Scalar(other)
        if not isinstance(other, Scalar):
            return NotImplemented
        return self._mul(other)

    __mul__ = __rmul__

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, GE):
            return NotImplemented
        return self._b == other._b

    def __hash__(self) -> int:
        return hash(("GE", self._b))

    def __repr__(self) -> str:
        return f"GE({self._b.hex()})"

    def to_bytes(self) -> bytes:
        return self._b

    @staticmethod
    def from_bytes(b: bytes) -> GE:
        """Decode a compressed point.

        Rejects encodings that are not 32 bytes, not canonical, not on the
        curve, of small order (including the identity), or outside the
        prime-order subgroup.
        """
        if len(b) != POINT_SIZE:
            raise InvalidEncodingError(f"Point must be {POINT_SIZE} bytes")
        if not bindings.crypto_core_ed25519_is_valid_point(bytes(b)):
            raise InvalidEncodingError("Invalid Ed25519 point encoding")
        return GE(b)

    @staticmethod
    def from_bytes_with_infinity(b: bytes) -> GE:
        # Like from_bytes(), but also accepts the identity encoding, which
        # to_bytes() emits for GE().
        if bytes(b) == IDENTITY_BYTES:
            return GE()
        return GE.from_bytes(b)

    @staticmethod
    def sum(*points: GE) -> GE:
        acc = GE()
        for p in points:
            acc = acc + p
        return acc

    @staticmethod
    def batch_mul(*pairs: Tuple[Union[int, Scalar], GE]) -> GE:
        return GE.sum(*(Scalar(s) * p for s, p in pairs))


G = GE(BASE_BYTES)


def expand_private_key(secret: bytes) -> Tuple[Scalar, Scalar]:
    """Expand a 32-byte Ed25519 secret key as in RFC 8032.

    Returns the clamped secret scalar and the nonce-derivation prefix, both
    reduced modulo L. The public key `scalar * G` equals the standard Ed25519
    public key of `secret`.
    """
    if len(secret) != 32:
        raise ValueError("Secret key must be 32 bytes")
    h = bytearray(hashlib.sha512(secret).digest())
    h[0] &= 248
    h[31] &= 127
    h[31] |= 64
    scalar = Scalar.from_bytes_wide(bytes(h[:32]))
    prefix = Scalar.from_bytes_wide(bytes(h[32:]))
    return scalar, prefix
