from typing import Any, Dict, List, NamedTuple, Sequence

from .util import InsufficientParticipantsError, tagged_hash_tss, index_to_bytes


MAX_PARTIES = 2**16 - 1


# As with the other protocol values, this is a plain tuple rather than a class
# with a validating constructor. Validation happens in params_validate().
class Parameters(NamedTuple):
    """The common parameters of a key generation or signing session.

    Attributes:
        threshold: The threshold `t`. Any `t + 1` parties can sign, no `t`
            parties can.
        share_count: The number of parties `n` sharing the key. It must hold
            that `0 < t < n <= 2**16 - 1`.
    """

    threshold: int
    share_count: int


class ParamsError(ValueError):
    """Base exception for invalid `Parameters` or party index lists."""


class ThresholdOrCountError(ParamsError):
    """Raised if `0 < threshold < share_count <= 2**16 - 1` does not hold."""


class InvalidPartyIndexError(ParamsError):
    """Raised if a party index is outside `1..=share_count`.

    Attributes:
        participant (int): The invalid index.
    """

    def __init__(self, participant: int, *args: Any):
        self.participant = participant
        super().__init__(participant, *args)


class DuplicatePartyIndexError(ParamsError):
    """Raised if a party index occurs twice in a list of parties.

    Attributes:
        participant (int): The duplicated index.
        position1 (int): Position of the first occurrence.
        position2 (int): Position of the second occurrence.
    """

    def __init__(self, participant: int, position1: int, position2: int, *args: Any):
        self.participant = participant
        self.position1 = position1
        self.position2 = position2
        super().__init__(participant, position1, position2, *args)


def params_validate(params: Parameters) -> None:
    t, n = params
    if not (0 < t < n <= MAX_PARTIES):
        raise ThresholdOrCountError


def parties_validate(params: Parameters, parties: Sequence[int]) -> None:
    """Check a list of participating party indices against `params`.

    Raises:
        ThresholdOrCountError: If `params` is invalid.
        InvalidPartyIndexError: If an index is not in `1..=share_count`.
        DuplicatePartyIndexError: If an index occurs twice.
        InsufficientParticipantsError: If fewer than `threshold + 1` parties
            are given.
    """
    params_validate(params)
    t, n = params

    index_to_pos: Dict[int, int] = dict()
    for pos, i in enumerate(parties):
        if not (1 <= i <= n):
            raise InvalidPartyIndexError(i)
        if i in index_to_pos:
            raise DuplicatePartyIndexError(i, index_to_pos[i], pos)
        index_to_pos[i] = pos

    if len(parties) <= t:
        raise InsufficientParticipantsError(
            f"Need at least {t + 1} parties, got {len(parties)}"
        )


def all_parties(params: Parameters) -> List[int]:
    return list(range(1, params.share_count + 1))


def params_id(params: Parameters) -> bytes:
    """Return the parameters ID, a unique representation of `params`.

    The parameters ID is a collision-resistant hash of the threshold and the
    share count. Parties can compare it out of band to make sure they run the
    protocol with identical parameters.

    Returns:
        bytes: The parameters ID, a 32-byte string.

    Raises:
        ThresholdOrCountError: If `0 < threshold < share_count <= 2**16 - 1`
            does not hold.
    """
    params_validate(params)
    t, n = params
    params_id = tagged_hash_tss("params_id", index_to_bytes(t) + index_to_bytes(n))
    assert len(params_id) == 32
    return params_id
