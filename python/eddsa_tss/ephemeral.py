"""Ephemeral (per-message) threshold nonce generation.

The protocol mirrors static key generation in `keygen`, but it runs among the
signers only, and each signer's nonce contribution and sharing polynomial are
derived deterministically from its key material, the message and its index.
The result `EphemeralSharedKeys(R, r_i)` is parallel to `SharedKeys(y, x_i)`.

WARNING: An ephemeral session must never be run again once it has produced a
local signature. Since the nonce contribution and its sharing polynomial are
derived deterministically, a second run for the same message yields the same
`r_i` contribution. If any co-signer changes its own contribution in that run,
the combined nonce changes while this party's contribution does not, and the
two local signatures reveal the party's key share `x_i`. The same holds for
signing two different messages with one nonce. These functions keep no state.
`sessions.SigningSessions` is the only guard against such reuse and must be
used for every signing session.
"""

import logging
from typing import List, NamedTuple, Optional, Sequence, Tuple

from .ed25519 import GE, G, Scalar
from .keygen import PartyKeys
from .params import Parameters
from .pedpop import (
    BroadcastMessage1,
    broadcast,
    verify_com_distribute,
    verify_vss_construct,
)
from .util import (
    InvalidEncodingError,
    ShareVerificationError,
    index_to_bytes,
    tagged_hash512_tss,
    tagged_hash_tss,
)
from .vss import VSSScheme

__all__ = [
    # Functions
    "session_id",
    "ephemeral_key_create_from_deterministic_secret",
    "phase1_broadcast",
    "phase1_verify_com_phase2_distribute",
    "phase2_verify_vss_construct_keypair",
    # Types
    "EphemeralKey",
    "EphemeralSharedKeys",
]

logger = logging.getLogger(__name__)


class EphemeralKey(NamedTuple):
    """A signer's own nonce contribution for one signing session.

    Attributes:
        party_index: Index of the signer.
        r_i: Secret nonce contribution.
        R_i: `r_i * G`.
        seed: Seed of the signer's nonce sharing polynomial.
        session_id: Identifier of the signing session, see `session_id()`.
    """

    party_index: int
    r_i: Scalar
    R_i: GE
    seed: bytes
    session_id: bytes


class EphemeralSharedKeys(NamedTuple):
    """A signer's share of the session nonce.

    Attributes:
        R: The combined nonce point.
        r_i: The signer's share of the combined nonce.
        session_id: Identifier of the session this nonce belongs to, or None
            if the value was decoded without session context.
    """

    R: GE
    r_i: Scalar
    session_id: Optional[bytes] = None

    def to_bytes(self) -> bytes:
        return self.R.to_bytes() + self.r_i.to_bytes()

    @staticmethod
    def from_bytes(b: bytes) -> "EphemeralSharedKeys":
        if len(b) != 64:
            raise InvalidEncodingError("EphemeralSharedKeys must be 64 bytes")
        return EphemeralSharedKeys(
            GE.from_bytes(b[0:32]), Scalar.from_bytes_checked(b[32:64])
        )


def session_id(key_identity: bytes, message: bytes, index: int) -> bytes:
    """Return the 32-byte identifier of a signing session.

    Arguments:
        key_identity: The party's public key (32 bytes), see
            `PartyKeys.key_identity()`.
        message: The message to be signed.
        index: The party's index.
    """
    if len(key_identity) != 32:
        raise ValueError("Key identity must be 32 bytes")
    # The message goes last as it is the only variable-length input.
    return tagged_hash_tss("session id", key_identity + index_to_bytes(index) + message)


def ephemeral_key_create_from_deterministic_secret(
    keys: PartyKeys, message: bytes, index: int
) -> EphemeralKey:
    """Derive the signer's nonce contribution for signing `message`.

    The nonce is derived from the party's secret prefix, the message and the
    index, so running the session again with the same inputs yields the same
    `EphemeralSharedKeys`, and sessions for different messages yield unrelated
    nonces.

    WARNING: Do not call this directly to rerun a session that has already
    signed. Open sessions through `sessions.SigningSessions`, which refuses
    to reopen them.
    """
    if index != keys.party_index:
        raise ValueError("Index does not match the party's key material")
    data = keys.prefix.to_bytes() + index_to_bytes(index) + message
    r_i = Scalar.from_bytes_wide(tagged_hash512_tss("nonce", data))
    seed = tagged_hash_tss("nonce vss seed", data)
    sid = session_id(keys.key_identity(), message, index)
    logger.debug("Derived ephemeral key for party %d, session %s", index, sid.hex())
    return EphemeralKey(index, r_i, r_i * G, seed, sid)


def phase1_broadcast(eph_key: EphemeralKey) -> Tuple[BroadcastMessage1, int]:
    """Commit to the nonce contribution `R_i`."""
    return broadcast(eph_key.R_i)


def phase1_verify_com_phase2_distribute(
    eph_key: EphemeralKey,
    params: Parameters,
    blind_factors: Sequence[int],
    R_points: Sequence[GE],
    commitments: Sequence[BroadcastMessage1],
    parties: Sequence[int],
) -> Tuple[VSSScheme, List[Scalar]]:
    """Verify the signers' commitment openings and share the nonce.

    Arguments:
        eph_key: This signer's ephemeral key.
        params: The parameters of key generation.
        blind_factors, R_points, commitments: The revealed blind factors,
            nonce points and broadcast commitments of all signers, aligned
            with `parties`.
        parties: Ordered list of the signers' indices. At least
            `threshold + 1` signers are required.

    Raises:
        CommitmentMismatchError: If a signer's revealed nonce point does not
            open its commitment.
        InsufficientParticipantsError: If there are too few signers.
    """
    return verify_com_distribute(
        eph_key.party_index,
        eph_key.r_i,
        params,
        blind_factors,
        R_points,
        commitments,
        parties,
        seed=eph_key.seed,
    )


def phase2_verify_vss_construct_keypair(
    eph_key: EphemeralKey,
    params: Parameters,
    R_points: Sequence[GE],
    secret_shares: Sequence[Scalar],
    vss_schemes: Sequence[VSSScheme],
    index: int,
) -> EphemeralSharedKeys:
    """Verify the received nonce shares and construct `EphemeralSharedKeys`.

    All lists are aligned with the signer list that was passed to
    `phase1_verify_com_phase2_distribute`, which every VSS scheme carries.

    Raises:
        ShareVerificationError: If a share does not match its VSS scheme.
    """
    if index != eph_key.party_index:
        raise ValueError("Index does not match the ephemeral key")
    if len(vss_schemes) == 0:
        raise ValueError("No VSS schemes given")
    parties = vss_schemes[0].parties
    for i, v in zip(parties, vss_schemes):
        if v.parties != parties:
            raise ShareVerificationError(i, "VSS scheme was dealt to other signers")
    r_i, R = verify_vss_construct(
        index, params, R_points, secret_shares, vss_schemes, parties
    )
    logger.debug("Party %d constructed its nonce share", index)
    return EphemeralSharedKeys(R, r_i, eph_key.session_id)
