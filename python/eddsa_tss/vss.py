from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from .ed25519 import GE, G, Scalar, POINT_SIZE
from .util import (
    InsufficientParticipantsError,
    InvalidEncodingError,
    index_to_bytes,
    tagged_hash512_tss,
)


class Polynomial:
    # A scalar polynomial.
    #
    # A polynomial f of degree t is represented by a list `coeffs` of t + 1
    # coefficients, i.e., f(x) = coeffs[0] + ... + coeffs[t] * x^t.
    coeffs: List[Scalar]

    def __init__(self, coeffs: List[Scalar]) -> None:
        self.coeffs = coeffs

    def eval(self, x: Scalar) -> Scalar:
        # Evaluate a polynomial at position x.

        value = Scalar(0)
        # Reverse coefficients to compute evaluation via Horner's method
        for coeff in self.coeffs[::-1]:
            value = value * x + coeff
        return value

    def __call__(self, x: Scalar) -> Scalar:
        return self.eval(x)


class VSSScheme:
    """Feldman commitments to the coefficients of a sharing polynomial.

    Attributes:
        threshold: Degree `t` of the sharing polynomial.
        parties: Ordered party indices the secret was shared to.
        commitments: `t + 1` points; `commitments[j]` commits to the j-th
            coefficient, so `commitments[0]` is the image of the secret.
    """

    threshold: int
    parties: List[int]
    commitments: List[GE]

    def __init__(
        self, threshold: int, parties: Sequence[int], commitments: List[GE]
    ) -> None:
        if len(commitments) != threshold + 1:
            raise ValueError(
                f"Expected {threshold + 1} commitments, got {len(commitments)}"
            )
        self.threshold = threshold
        self.parties = list(parties)
        self.commitments = commitments

    @property
    def share_count(self) -> int:
        return len(self.parties)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VSSScheme):
            return NotImplemented
        return (
            self.threshold == other.threshold
            and self.parties == other.parties
            and self.commitments == other.commitments
        )

    def __repr__(self) -> str:
        return (
            f"VSSScheme(threshold={self.threshold}, parties={self.parties}, "
            f"commitments={self.commitments})"
        )

    def commitment_to_secret(self) -> GE:
        return self.commitments[0]

    def pubshare(self, index: int) -> GE:
        # The public image of the share at index, i.e., f(index) * G computed
        # in the exponent.
        x = Scalar(index)
        return GE.batch_mul(*((x**j, c) for j, c in enumerate(self.commitments)))

    def validate_share_public(self, pubshare: GE, index: int) -> bool:
        return self.pubshare(index) == pubshare

    def validate_share(self, share: Scalar, index: int) -> bool:
        return self.validate_share_public(share * G, index)

    def __add__(self, other: VSSScheme) -> VSSScheme:
        if self.threshold != other.threshold:
            raise ValueError("Cannot add VSS schemes with different thresholds")
        if self.parties != other.parties:
            raise ValueError("Cannot add VSS schemes dealt to different parties")
        return VSSScheme(
            self.threshold,
            self.parties,
            [a + b for a, b in zip(self.commitments, other.commitments)],
        )

    def scale(self, k: Scalar) -> VSSScheme:
        return VSSScheme(
            self.threshold, self.parties, [k * c for c in self.commitments]
        )

    def reconstruct(self, indices: Sequence[int], shares: Sequence[Scalar]) -> Scalar:
        return reconstruct(self.threshold, indices, shares)

    def to_bytes(self) -> bytes:
        return (
            index_to_bytes(self.threshold)
            + index_to_bytes(self.share_count)
            + b"".join(index_to_bytes(i) for i in self.parties)
            + b"".join(c.to_bytes() for c in self.commitments)
        )

    @staticmethod
    def from_bytes(b: bytes) -> VSSScheme:
        if len(b) < 4:
            raise InvalidEncodingError("Truncated VSS scheme")
        t = int.from_bytes(b[0:2], byteorder="big")
        n = int.from_bytes(b[2:4], byteorder="big")
        if len(b) != 4 + 2 * n + POINT_SIZE * (t + 1):
            raise InvalidEncodingError("VSS scheme has wrong length")
        rest = b[4:]
        parties = [
            int.from_bytes(rest[i : i + 2], byteorder="big") for i in range(0, 2 * n, 2)
        ]
        rest = rest[2 * n :]
        commitments = [
            GE.from_bytes_with_infinity(rest[i : i + POINT_SIZE])
            for i in range(0, POINT_SIZE * (t + 1), POINT_SIZE)
        ]
        return VSSScheme(t, parties, commitments)


class VSS:
    f: Polynomial

    def __init__(self, f: Polynomial) -> None:
        self.f = f

    @staticmethod
    def generate(secret: Scalar, seed: bytes, t: int) -> VSS:
        # The non-constant coefficients are derived from the seed, so the same
        # (secret, seed, t) always yields the same polynomial.
        coeffs = [secret] + [
            Scalar.from_bytes_wide(
                tagged_hash512_tss("vss coeffs", seed + i.to_bytes(4, byteorder="big"))
            )
            for i in range(1, t + 1)
        ]
        return VSS(Polynomial(coeffs))

    @staticmethod
    def random(secret: Scalar, t: int) -> VSS:
        return VSS(Polynomial([secret] + [Scalar.random() for _ in range(t)]))

    def secshare_for(self, index: int) -> Scalar:
        # Return the secret share for the party with index `index` (1-based).
        if index < 1:
            raise ValueError(f"Invalid party index: {index}")
        x = Scalar(index)
        # Ensure we don't compute f(0), which is the secret.
        assert x != Scalar(0)
        return self.f(x)

    def secshares(self, parties: Sequence[int]) -> List[Scalar]:
        return [self.secshare_for(i) for i in parties]

    def commit(self, parties: Sequence[int]) -> VSSScheme:
        t = len(self.f.coeffs) - 1
        return VSSScheme(t, parties, [c * G for c in self.f.coeffs])

    def secret(self) -> Scalar:
        # Return the secret to be shared.
        #
        # This computes f(0).
        return self.f.coeffs[0]


def share(
    secret: Scalar, threshold: int, parties: Sequence[int], seed: Optional[bytes] = None
) -> Tuple[VSSScheme, List[Scalar]]:
    """Share `secret` to `parties` with a random polynomial of degree `threshold`.

    If `seed` is given, the non-constant coefficients are derived from it
    deterministically.

    Returns:
        The VSS scheme and the list of secret shares, where the k-th share
        belongs to `parties[k]` and must be delivered to that party only.
    """
    if not (0 < threshold < len(parties)):
        raise ValueError("Threshold must be positive and less than the share count")
    if seed is None:
        vss = VSS.random(secret, threshold)
    else:
        vss = VSS.generate(secret, seed, threshold)
    return vss.commit(parties), vss.secshares(parties)


def verify_share(index: int, share: Scalar, commitments: List[GE]) -> bool:
    # Only public information is needed: share * G must equal the commitment
    # polynomial evaluated at index in the exponent.
    x = Scalar(index)
    expected = GE.batch_mul(*((x**j, c) for j, c in enumerate(commitments)))
    return share * G == expected


def lagrange_coefficient(indices: Sequence[int], i: int) -> Scalar:
    # Lagrange coefficient of index i for interpolation at x = 0.
    if i not in indices:
        raise ValueError(f"Index {i} is not in the interpolation set")
    if len(set(indices)) != len(indices):
        raise ValueError("Duplicate index")
    lam = Scalar(1)
    x_i = Scalar(i)
    for j in indices:
        x_j = Scalar(j)
        if x_j == x_i:
            continue
        lam *= x_j / (x_j - x_i)
    return lam


def _check_interpolation_set(
    threshold: int, indices: Sequence[int], count: int
) -> None:
    if len(indices) != count:
        raise ValueError("Number of indices and values differ")
    if len(set(indices)) <= threshold:
        raise InsufficientParticipantsError(
            f"Need at least {threshold + 1} distinct indices, got {len(set(indices))}"
        )
    if len(set(indices)) != len(indices):
        raise ValueError("Duplicate index")
    if any(i < 1 for i in indices):
        raise ValueError("Party indices are 1-based")


def reconstruct(
    threshold: int, indices: Sequence[int], shares: Sequence[Scalar]
) -> Scalar:
    """Interpolate the shared secret from at least `threshold + 1` shares.

    Raises:
        InsufficientParticipantsError: If fewer than `threshold + 1` distinct
            indices are given.
        ValueError: If the inputs are malformed.
    """
    _check_interpolation_set(threshold, indices, len(shares))
    return Scalar.sum(
        *(lagrange_coefficient(indices, i) * s for i, s in zip(indices, shares))
    )


def reconstruct_commitment(
    threshold: int, indices: Sequence[int], points: Sequence[GE]
) -> GE:
    """Interpolate `secret * G` from at least `threshold + 1` public shares."""
    _check_interpolation_set(threshold, indices, len(points))
    return GE.batch_mul(
        *((lagrange_coefficient(indices, i), p) for i, p in zip(indices, points))
    )
