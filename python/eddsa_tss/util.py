import hashlib
from typing import Any


TSS_TAG = "EdDSA TSS/"


def tagged_hash(tag: str, msg: bytes) -> bytes:
    tag_hash = hashlib.sha256(tag.encode()).digest()
    return hashlib.sha256(tag_hash + tag_hash + msg).digest()


def tagged_hash_tss(tag: str, msg: bytes) -> bytes:
    return tagged_hash(TSS_TAG + tag, msg)


def tagged_hash512_tss(tag: str, msg: bytes) -> bytes:
    # 64-byte output for uniform reduction modulo the Ed25519 group order.
    tag_hash = hashlib.sha512((TSS_TAG + tag).encode()).digest()
    return hashlib.sha512(tag_hash + msg).digest()


def int_to_bytes_minimal(x: int) -> bytes:
    # Big-endian without leading zero bytes; zero encodes as the empty string.
    if x < 0:
        raise ValueError("Negative integers cannot be encoded")
    return x.to_bytes((x.bit_length() + 7) // 8, byteorder="big")


def int_from_bytes(b: bytes) -> int:
    return int.from_bytes(b, byteorder="big")


def index_to_bytes(i: int) -> bytes:
    return i.to_bytes(2, byteorder="big")


class InvalidEncodingError(ValueError):
    """Raised if a point, scalar or message has a malformed encoding.

    Encodings are rejected before any cryptographic check is performed.
    """


class ProtocolError(Exception):
    """Base exception for errors caused by received protocol messages."""


class FaultyParticipantError(ProtocolError):
    """Raised if a participant is faulty.

    This exception is raised when a participant is detected to have deviated
    from the protocol. Assuming protocol messages have been transmitted
    correctly, this exception implies that the participant is indeed faulty.

    Attributes:
        participant (int): Party index (1-based) of the faulty participant.
    """

    def __init__(self, participant: int, *args: Any):
        self.participant = participant
        super().__init__(participant, *args)


class CommitmentMismatchError(FaultyParticipantError):
    """Raised if a revealed value does not open the participant's commitment."""


class ShareVerificationError(FaultyParticipantError):
    """Raised if a received secret share does not match its VSS commitments."""


class AggregateCheckError(FaultyParticipantError):
    """Raised if a local signature is inconsistent with the combined commitments.

    The combined commitments are the ephemeral VSS commitments plus the key
    generation VSS commitments scaled by the challenge. Each signer's response
    share is checked individually, so the participant attribute identifies the
    first signer whose share failed.
    """


class ChallengeMismatchError(ProtocolError):
    """Raised if the challenges of the local signatures differ.

    This indicates that the signers did not sign the same message under the
    same nonce and public key. The first deviating participant relative to the
    first local signature is given in the participant attribute.

    Attributes:
        participant (int): Party index of the deviating signer.
    """

    def __init__(self, participant: int, *args: Any):
        self.participant = participant
        super().__init__(participant, *args)


class InsufficientParticipantsError(ValueError):
    """Raised if fewer than threshold + 1 distinct party indices are given."""
