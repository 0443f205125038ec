"""Static (long-term) threshold key generation.

WARNING: This code is slow and trivially vulnerable to side channel attacks. Do
not use for anything but tests.

Every party runs the following steps in order, and each step may only be
invoked once all messages of the previous round of all parties are available:

  1. `phase1_create` (or `phase1_create_from_private_key`)
  2. `phase1_broadcast`: broadcast the commitment, keep the blind factor
  3. `phase1_verify_com_phase2_distribute`: after all commitments have been
     received and all parties have revealed their public keys and blind
     factors, verify the openings and share the secret key. The k-th secret
     share must be sent privately to party `parties[k]`, the VSS scheme is
     broadcast.
  4. `phase2_verify_vss_construct_keypair`: verify the received shares and
     assemble the `SharedKeys`.

Any exception is fatal to the session. The session must be restarted from
`phase1_create` with fresh randomness.
"""

import logging
from secrets import token_bytes as random_bytes
from typing import List, NamedTuple, Sequence, Tuple

from .ed25519 import GE, G, Scalar, expand_private_key
from .params import Parameters, all_parties, parties_validate
from .pedpop import (
    BroadcastMessage1,
    broadcast,
    verify_com_distribute,
    verify_vss_construct,
)
from .util import InvalidEncodingError, ShareVerificationError
from .vss import VSSScheme

__all__ = [
    # Functions
    "phase1_create",
    "phase1_create_from_private_key",
    "phase1_broadcast",
    "phase1_verify_com_phase2_distribute",
    "phase2_verify_vss_construct_keypair",
    # Types
    "PartyKeys",
    "KeyGenBroadcastMessage1",
    "SharedKeys",
]

logger = logging.getLogger(__name__)

KeyGenBroadcastMessage1 = BroadcastMessage1


class PartyKeys(NamedTuple):
    """A party's own key material before aggregation.

    Attributes:
        party_index: Index of the party (1-based).
        secret_scalar: The party's secret key scalar, shared in phase 2.
        prefix: Nonce-derivation secret from the expanded secret key.
        public_point: `secret_scalar * G`.
    """

    party_index: int
    secret_scalar: Scalar
    prefix: Scalar
    public_point: GE

    def key_identity(self) -> bytes:
        return self.public_point.to_bytes()


class SharedKeys(NamedTuple):
    """A party's share of the threshold key.

    Attributes:
        y: The threshold public key.
        x_i: The party's secret share of the threshold secret key.
        prefix: Nonce-derivation secret of the party.
    """

    y: GE
    x_i: Scalar
    prefix: Scalar

    def to_bytes(self) -> bytes:
        return self.y.to_bytes() + self.x_i.to_bytes() + self.prefix.to_bytes()

    @staticmethod
    def from_bytes(b: bytes) -> "SharedKeys":
        if len(b) != 96:
            raise InvalidEncodingError("SharedKeys must be 96 bytes")
        return SharedKeys(
            GE.from_bytes(b[0:32]),
            Scalar.from_bytes_checked(b[32:64]),
            Scalar.from_bytes_checked(b[64:96]),
        )


def phase1_create(party_index: int) -> PartyKeys:
    """Create fresh key material for the party with index `party_index`."""
    return phase1_create_from_private_key(party_index, random_bytes(32))


def phase1_create_from_private_key(party_index: int, secret: bytes) -> PartyKeys:
    """Create key material from a 32-byte Ed25519 secret key.

    The secret key is expanded as in RFC 8032, so `public_point` is the
    ordinary Ed25519 public key of `secret`.

    Raises:
        ValueError: If `secret` is not 32 bytes or `party_index` is not
            positive.
    """
    if party_index < 1:
        raise ValueError(f"Invalid party index: {party_index}")
    secret_scalar, prefix = expand_private_key(secret)
    logger.debug("Created key material for party %d", party_index)
    return PartyKeys(party_index, secret_scalar, prefix, secret_scalar * G)


def phase1_broadcast(keys: PartyKeys) -> Tuple[KeyGenBroadcastMessage1, int]:
    """Commit to the public key.

    Returns:
        The message to broadcast and the blind factor, which is kept until all
        commitments have been received and then revealed with the public key.
    """
    return broadcast(keys.public_point)


def phase1_verify_com_phase2_distribute(
    keys: PartyKeys,
    params: Parameters,
    blind_factors: Sequence[int],
    public_keys: Sequence[GE],
    commitments: Sequence[KeyGenBroadcastMessage1],
    parties: Sequence[int],
) -> Tuple[VSSScheme, List[Scalar]]:
    """Verify all commitment openings and share the secret key.

    Arguments:
        keys: This party's key material.
        params: The session parameters. All `share_count` parties take part in
            key generation.
        blind_factors, public_keys, commitments: The revealed blind factors,
            public keys and broadcast commitments of all parties, aligned with
            `parties`.
        parties: Ordered list of all party indices.

    Returns:
        This party's VSS scheme (to be broadcast) and secret shares (the k-th
        to be sent privately to `parties[k]`).

    Raises:
        CommitmentMismatchError: If a party's revealed public key does not open
            its commitment. The offending party index is available in the
            `participant` attribute.
        ParamsError: If `params` or `parties` are invalid.
    """
    parties_validate(params, parties)
    if len(parties) != params.share_count:
        raise ValueError("All parties take part in key generation")
    return verify_com_distribute(
        keys.party_index,
        keys.secret_scalar,
        params,
        blind_factors,
        public_keys,
        commitments,
        parties,
    )


def phase2_verify_vss_construct_keypair(
    keys: PartyKeys,
    params: Parameters,
    public_keys: Sequence[GE],
    secret_shares: Sequence[Scalar],
    vss_schemes: Sequence[VSSScheme],
    index: int,
) -> SharedKeys:
    """Verify the received shares and construct this party's `SharedKeys`.

    Arguments:
        keys: This party's key material.
        params: The session parameters.
        public_keys: Public keys of all parties, ordered by party index.
        secret_shares: The share each party sent to this party, ordered by
            sender index (including the party's own share).
        vss_schemes: The VSS scheme of each party, ordered by party index.
        index: This party's index.

    Raises:
        ShareVerificationError: If a share does not match its VSS scheme, or a
            VSS scheme does not commit to the sender's public key. The
            offending party index is available in the `participant`
            attribute.
    """
    if index != keys.party_index:
        raise ValueError("Index does not match the party's key material")
    sharers = all_parties(params)
    for i, v in zip(sharers, vss_schemes):
        if v.parties != sharers:
            raise ShareVerificationError(
                i, "VSS scheme was not dealt to all parties in index order"
            )
    x_i, y = verify_vss_construct(
        index, params, public_keys, secret_shares, vss_schemes, sharers
    )
    logger.debug("Party %d constructed its share of the threshold key", index)
    return SharedKeys(y, x_i, keys.prefix)


def combined_vss_scheme(vss_schemes: Sequence[VSSScheme]) -> VSSScheme:
    """Sum the VSS schemes of all parties.

    The result commits to the polynomial whose evaluations are the parties'
    `x_i` and whose constant term is the threshold secret key.
    """
    acc = vss_schemes[0]
    for v in vss_schemes[1:]:
        acc = acc + v
    return acc


def pubshares(vss_schemes: Sequence[VSSScheme]) -> List[GE]:
    """Return the public image `x_i * G` of every party's share."""
    combined = combined_vss_scheme(vss_schemes)
    return [combined.pubshare(i) for i in combined.parties]
