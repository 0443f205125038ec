"""Commit-reveal Pedersen DKG rounds shared by static and ephemeral key generation.

Each party holds a secret scalar and its public image. The rounds are:

  1. broadcast a hash commitment to the public point,
  2. reveal the public point and blind factor, verify everyone's openings and
     VSS-share the secret to all parties,
  3. verify the received shares against the senders' VSS schemes and sum them.

Static key generation shares the long-term secret key, ephemeral key generation
shares the per-message nonce. Both wrap the functions in this module.
"""

import logging
from typing import List, NamedTuple, Optional, Sequence, Tuple

from .commitment import commit, open_commitment
from .ed25519 import GE, G, Scalar
from .params import Parameters, parties_validate
from .util import CommitmentMismatchError, ShareVerificationError
from .vss import VSSScheme, share

logger = logging.getLogger(__name__)


###
### Messages
###


class BroadcastMessage1(NamedTuple):
    com: int


###
### Rounds
###


def broadcast(point: GE) -> Tuple[BroadcastMessage1, int]:
    c = commit(point.to_bytes())
    return BroadcastMessage1(c.com), c.blind_factor


def verify_openings(
    own_index: int,
    own_point: GE,
    blind_factors: Sequence[int],
    points: Sequence[GE],
    bc1_vec: Sequence[BroadcastMessage1],
    parties: Sequence[int],
) -> None:
    n = len(parties)
    if not (len(blind_factors) == len(points) == len(bc1_vec) == n):
        raise ValueError("Expected one opening and one commitment per party")

    for pos, i in enumerate(parties):
        if i == own_index:
            if points[pos] != own_point:
                raise ValueError("Unexpected public point at own index")
            # No need to check our own commitment.
            continue
        if not open_commitment(
            bc1_vec[pos].com, blind_factors[pos], points[pos].to_bytes()
        ):
            logger.warning("Party %d revealed a value not matching its commitment", i)
            raise CommitmentMismatchError(
                i, "Revealed point does not open the broadcast commitment"
            )


def verify_com_distribute(
    own_index: int,
    secret: Scalar,
    params: Parameters,
    blind_factors: Sequence[int],
    points: Sequence[GE],
    bc1_vec: Sequence[BroadcastMessage1],
    parties: Sequence[int],
    seed: Optional[bytes] = None,
) -> Tuple[VSSScheme, List[Scalar]]:
    parties_validate(params, parties)
    if own_index not in parties:
        raise ValueError(f"Party {own_index} is not among the participating parties")

    verify_openings(own_index, secret * G, blind_factors, points, bc1_vec, parties)
    logger.debug("Party %d verified %d commitment openings", own_index, len(parties))

    # Only share after all commitments have been verified.
    vss_scheme, secret_shares = share(secret, params.threshold, parties, seed)
    return vss_scheme, secret_shares


def verify_vss_construct(
    own_index: int,
    params: Parameters,
    points: Sequence[GE],
    secret_shares: Sequence[Scalar],
    vss_schemes: Sequence[VSSScheme],
    parties: Sequence[int],
) -> Tuple[Scalar, GE]:
    # Lists are aligned with `parties`, i.e., secret_shares[pos] is the share
    # that party parties[pos] sent to us.
    parties_validate(params, parties)
    if own_index not in parties:
        raise ValueError(f"Party {own_index} is not among the participating parties")
    n = len(parties)
    if not (len(points) == len(secret_shares) == len(vss_schemes) == n):
        raise ValueError("Expected one point, share and VSS scheme per party")

    for pos, i in enumerate(parties):
        vss_scheme = vss_schemes[pos]
        if vss_scheme.threshold != params.threshold:
            raise ShareVerificationError(i, "VSS scheme has wrong threshold")
        if own_index not in vss_scheme.parties:
            raise ShareVerificationError(i, "VSS scheme does not include our index")
        if vss_scheme.commitment_to_secret() != points[pos]:
            logger.warning("Party %d committed to an unrevealed secret", i)
            raise ShareVerificationError(
                i, "First VSS commitment does not match the revealed point"
            )
        if not vss_scheme.validate_share(secret_shares[pos], own_index):
            logger.warning("Party %d sent an invalid share to party %d", i, own_index)
            raise ShareVerificationError(i, "Received invalid secret share")

    secret_sum = Scalar.sum(*secret_shares)
    point_sum = GE.sum(*points)

    # Every share is valid, hence the sum is a valid share of the summed
    # polynomial.
    assert secret_sum * G == GE.sum(*(v.pubshare(own_index) for v in vss_schemes))
    logger.debug("Party %d verified %d secret shares", own_index, n)
    return secret_sum, point_sum
