"""Local signatures, aggregation and verification.

Each signer computes `LocalSig(gamma_i, k)` with `gamma_i = r_i + k * x_i`.
Because `r_i` and `x_i` are evaluations of polynomials committed to by the
ephemeral and key generation VSS schemes, `gamma_i` is an evaluation of a
polynomial committed to by `sum(eph) + k * sum(keygen)`. This lets anyone check
every `gamma_i` against public data before interpolating the final `s` at 0.

The final `Signature(R, s)` is an ordinary Ed25519 signature under the
threshold public key `y`.
"""

import hashlib
import logging
from typing import List, NamedTuple, Sequence

from .ed25519 import GE, G, Scalar
from .ephemeral import EphemeralSharedKeys
from .keygen import SharedKeys
from .util import (
    AggregateCheckError,
    ChallengeMismatchError,
    InsufficientParticipantsError,
    InvalidEncodingError,
)
from .vss import VSSScheme, reconstruct

__all__ = [
    # Functions
    "compute_challenge",
    "compute_local_sig",
    "verify_local_sigs",
    "generate_signature",
    "verify",
    # Types
    "LocalSig",
    "Signature",
]

logger = logging.getLogger(__name__)


class LocalSig(NamedTuple):
    gamma_i: Scalar
    k: Scalar

    def to_bytes(self) -> bytes:
        return self.gamma_i.to_bytes() + self.k.to_bytes()

    @staticmethod
    def from_bytes(b: bytes) -> "LocalSig":
        if len(b) != 64:
            raise InvalidEncodingError("LocalSig must be 64 bytes")
        return LocalSig(
            Scalar.from_bytes_checked(b[0:32]), Scalar.from_bytes_checked(b[32:64])
        )


class Signature(NamedTuple):
    R: GE
    s: Scalar

    def to_bytes(self) -> bytes:
        return self.R.to_bytes() + self.s.to_bytes()

    @staticmethod
    def from_bytes(b: bytes) -> "Signature":
        if len(b) != 64:
            raise InvalidEncodingError("Signature must be 64 bytes")
        return Signature(GE.from_bytes(b[0:32]), Scalar.from_bytes_checked(b[32:64]))


def compute_challenge(R: GE, public_key: GE, message: bytes) -> Scalar:
    # The RFC 8032 challenge SHA-512(R || A || M) reduced modulo L.
    h = hashlib.sha512(R.to_bytes() + public_key.to_bytes() + message).digest()
    return Scalar.from_bytes_wide(h)


def compute_local_sig(
    message: bytes, eph_shared_keys: EphemeralSharedKeys, shared_keys: SharedKeys
) -> LocalSig:
    """Compute this signer's local signature on `message`."""
    k = compute_challenge(eph_shared_keys.R, shared_keys.y, message)
    gamma_i = eph_shared_keys.r_i + k * shared_keys.x_i
    return LocalSig(gamma_i, k)


def verify_local_sigs(
    local_sigs: Sequence[LocalSig],
    signer_indices: Sequence[int],
    keygen_vss_schemes: Sequence[VSSScheme],
    ephemeral_vss_schemes: Sequence[VSSScheme],
) -> VSSScheme:
    """Check the local signatures against the VSS commitments.

    Arguments:
        local_sigs: The local signatures, aligned with `signer_indices`.
        signer_indices: Indices of the signers.
        keygen_vss_schemes: The VSS schemes of all parties from key generation.
        ephemeral_vss_schemes: The VSS schemes of all signers from ephemeral
            key generation.

    Returns:
        The VSS scheme committing to the polynomial whose evaluations are the
        `gamma_i`, to be passed to `generate_signature`.

    Raises:
        InsufficientParticipantsError: If fewer than `threshold + 1` distinct
            signers are given.
        ChallengeMismatchError: If the signers used different challenges `k`.
        AggregateCheckError: If a signer's `gamma_i` is inconsistent with the
            commitments. The signer's index is available in the `participant`
            attribute.
    """
    if len(keygen_vss_schemes) == 0 or len(ephemeral_vss_schemes) == 0:
        raise ValueError("No VSS schemes given")
    t = keygen_vss_schemes[0].threshold
    if len(set(signer_indices)) <= t:
        raise InsufficientParticipantsError(
            f"Need at least {t + 1} distinct signers, got {len(set(signer_indices))}"
        )
    if len(set(signer_indices)) != len(signer_indices):
        raise ValueError("Duplicate signer index")
    if len(local_sigs) != len(signer_indices):
        raise ValueError("Expected one local signature per signer")
    if any(v.threshold != t for v in keygen_vss_schemes) or any(
        v.threshold != t for v in ephemeral_vss_schemes
    ):
        raise ValueError("VSS schemes have different thresholds")

    k = local_sigs[0].k
    for i, local_sig in zip(signer_indices, local_sigs):
        if local_sig.k != k:
            logger.warning("Signer %d used a different challenge", i)
            raise ChallengeMismatchError(i, "Signers computed different challenges")

    # The j-th commitment is sum(eph_j) + k * sum(keygen_j).
    commitments = [
        GE.sum(*(v.commitments[j] for v in ephemeral_vss_schemes))
        + k * GE.sum(*(v.commitments[j] for v in keygen_vss_schemes))
        for j in range(t + 1)
    ]
    vss_sum = VSSScheme(t, signer_indices, commitments)

    for i, local_sig in zip(signer_indices, local_sigs):
        if not vss_sum.validate_share(local_sig.gamma_i, i):
            logger.warning("Signer %d sent an invalid local signature", i)
            raise AggregateCheckError(i, "Local signature does not match commitments")
    logger.debug("Verified %d local signatures", len(local_sigs))
    return vss_sum


def generate_signature(
    vss_sum_local_sigs: VSSScheme,
    local_sigs: Sequence[LocalSig],
    signer_indices: Sequence[int],
    R: GE,
) -> Signature:
    """Interpolate the local signatures into the final signature.

    Raises:
        InsufficientParticipantsError: If fewer than `threshold + 1` distinct
            signers are given.
    """
    gammas: List[Scalar] = [local_sig.gamma_i for local_sig in local_sigs]
    s = reconstruct(vss_sum_local_sigs.threshold, signer_indices, gammas)
    return Signature(R, s)


def verify(signature: Signature, message: bytes, public_key: GE) -> bool:
    """Verify an Ed25519 signature.

    Returns:
        True if `s * G == R + k * public_key` with `k` the challenge of
        `message`, False otherwise.
    """
    R, s = signature
    if R.infinity or public_key.infinity:
        return False
    k = compute_challenge(R, public_key, message)
    return s * G == R + k * public_key
