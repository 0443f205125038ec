#!/usr/bin/env python3

"""Example of a full threshold EdDSA session: key generation and signing"""

from typing import Dict, List, Optional, Sequence, Tuple
import argparse
import asyncio
import logging
import pprint
from random import choice
import sys

from eddsa_tss import ephemeral, keygen
from eddsa_tss.ed25519 import GE, Scalar
from eddsa_tss.ephemeral import EphemeralSharedKeys
from eddsa_tss.keygen import SharedKeys
from eddsa_tss.params import Parameters, all_parties, params_id, parties_validate
from eddsa_tss.sessions import SigningSessions
from eddsa_tss.signing import (
    Signature,
    generate_signature,
    verify,
    verify_local_sigs,
)
from eddsa_tss.util import FaultyParticipantError
from eddsa_tss.vss import VSSScheme

#
# Network mocks to simulate full sessions
#


class CoordinatorChannels:
    def __init__(self, parties: Sequence[int]):
        self.queues: Dict[int, asyncio.Queue] = {i: asyncio.Queue() for i in parties}
        self.participant_queues: Optional[Dict[int, asyncio.Queue]] = None

    def set_participant_queues(self, participant_queues):
        self.participant_queues = participant_queues

    def send_to(self, i, m):
        assert self.participant_queues is not None
        self.participant_queues[i].put_nowait(m)

    def send_all(self, recipients, m):
        for i in recipients:
            self.send_to(i, m)

    async def receive_from(self, i):
        item = await self.queues[i].get()
        return item


class ParticipantChannel:
    def __init__(self, coord_queue):
        self.queue = asyncio.Queue()
        self.coord_queue = coord_queue

    # Send m to coordinator
    def send(self, m):
        self.coord_queue.put_nowait(m)

    async def receive(self):
        item = await self.queue.get()
        return item


#
# Helper functions
#


def pphex(thing):
    """Pretty print an object with bytes, points and scalars as hex strings"""

    def hexlify(thing):
        if isinstance(thing, bytes):
            return thing.hex()
        if isinstance(thing, (GE, Scalar)):
            return thing.to_bytes().hex()
        if isinstance(thing, dict):
            return {k: hexlify(v) for k, v in thing.items()}
        if hasattr(thing, "_asdict"):  # NamedTuple
            return hexlify(thing._asdict())
        if isinstance(thing, List):
            return [hexlify(v) for v in thing]
        return thing

    pprint.pp(hexlify(thing))


# VSS schemes are relayed in their wire encoding.
def wire_schemes(vss_schemes: List[VSSScheme]) -> List[bytes]:
    return [v.to_bytes() for v in vss_schemes]


def unwire_schemes(bs: List[bytes]) -> List[VSSScheme]:
    return [VSSScheme.from_bytes(b) for b in bs]


#
# Protocol parties
#


async def participant(
    chan: ParticipantChannel,
    index: int,
    params: Parameters,
    signers: List[int],
    message: bytes,
    victim: Optional[int] = None,
) -> Tuple[SharedKeys, Optional[EphemeralSharedKeys]]:
    parties = all_parties(params)

    # Key generation
    keys = keygen.phase1_create(index)
    bc1, blind_factor = keygen.phase1_broadcast(keys)
    chan.send(bc1)
    bc1_vec = await chan.receive()
    chan.send((keys.public_point, blind_factor))
    reveals = await chan.receive()
    public_keys = [pk for (pk, _) in reveals]
    blind_factors = [b for (_, b) in reveals]

    vss_scheme, secret_shares = keygen.phase1_verify_com_phase2_distribute(
        keys, params, blind_factors, public_keys, bc1_vec, parties
    )
    if victim is not None:
        # This participant is faulty and sends an invalid share to the victim.
        secret_shares[parties.index(victim)] += Scalar(17)
    chan.send((vss_scheme.to_bytes(), secret_shares))
    wired_schemes, shares_for_me = await chan.receive()
    shared_keys = keygen.phase2_verify_vss_construct_keypair(
        keys, params, public_keys, shares_for_me, unwire_schemes(wired_schemes), index
    )

    if index not in signers:
        return shared_keys, None

    # Ephemeral key generation for the message
    sessions = SigningSessions()
    eph_key = sessions.open(keys, message, index)
    eph_bc1, eph_blind_factor = ephemeral.phase1_broadcast(eph_key)
    chan.send(eph_bc1)
    eph_bc1_vec = await chan.receive()
    chan.send((eph_key.R_i, eph_blind_factor))
    eph_reveals = await chan.receive()
    R_points = [R for (R, _) in eph_reveals]
    eph_blind_factors = [b for (_, b) in eph_reveals]

    eph_vss_scheme, eph_secret_shares = ephemeral.phase1_verify_com_phase2_distribute(
        eph_key, params, eph_blind_factors, R_points, eph_bc1_vec, signers
    )
    chan.send((eph_vss_scheme.to_bytes(), eph_secret_shares))
    eph_wired_schemes, eph_shares_for_me = await chan.receive()
    eph_shared_keys = ephemeral.phase2_verify_vss_construct_keypair(
        eph_key,
        params,
        R_points,
        eph_shares_for_me,
        unwire_schemes(eph_wired_schemes),
        index,
    )
    sessions.complete(eph_key.session_id, eph_shared_keys)

    # Local signature
    local_sig = sessions.sign(eph_key.session_id, message, shared_keys)
    chan.send(local_sig)
    return shared_keys, eph_shared_keys


async def relay_round(chans: CoordinatorChannels, senders: List[int]) -> None:
    msgs = [await chans.receive_from(i) for i in senders]
    chans.send_all(senders, msgs)


async def relay_shares(
    chans: CoordinatorChannels, senders: List[int]
) -> List[VSSScheme]:
    # In a deployment, shares must travel over private channels. The
    # coordinator only relays them here to keep the example small.
    dealt = [await chans.receive_from(i) for i in senders]
    wired_schemes = [w for (w, _) in dealt]
    for pos, i in enumerate(senders):
        chans.send_to(i, (wired_schemes, [shares[pos] for (_, shares) in dealt]))
    return unwire_schemes(wired_schemes)


async def coordinator(
    chans: CoordinatorChannels, params: Parameters, signers: List[int], message: bytes
) -> Tuple[GE, Signature]:
    parties = all_parties(params)

    # Key generation: commitments, openings, shares
    await relay_round(chans, parties)
    reveals = [await chans.receive_from(i) for i in parties]
    chans.send_all(parties, reveals)
    threshold_pubkey = GE.sum(*(pk for (pk, _) in reveals))
    vss_schemes = await relay_shares(chans, parties)

    # Ephemeral key generation among the signers
    await relay_round(chans, signers)
    eph_reveals = [await chans.receive_from(i) for i in signers]
    chans.send_all(signers, eph_reveals)
    R = GE.sum(*(R_i for (R_i, _) in eph_reveals))
    eph_vss_schemes = await relay_shares(chans, signers)

    # Aggregation
    local_sigs = [await chans.receive_from(i) for i in signers]
    vss_sum = verify_local_sigs(local_sigs, signers, vss_schemes, eph_vss_schemes)
    signature = generate_signature(vss_sum, local_sigs, signers, R)
    assert verify(signature, message, threshold_pubkey)
    return threshold_pubkey, signature


#
# Session
#


def simulate_session(
    params: Parameters,
    signers: List[int],
    message: bytes,
    faulty_idx: Optional[int] = None,
) -> list:
    parties_validate(params, signers)
    parties = all_parties(params)

    victim = None
    if faulty_idx is not None:
        victim = choice([i for i in parties if i != faulty_idx])

    async def session():
        coord_chans = CoordinatorChannels(parties)
        participant_chans = {
            i: ParticipantChannel(coord_chans.queues[i]) for i in parties
        }
        coord_chans.set_participant_queues(
            {i: participant_chans[i].queue for i in parties}
        )
        coroutines = [coordinator(coord_chans, params, signers, message)] + [
            participant(
                participant_chans[i],
                i,
                params,
                signers,
                message,
                victim if i == faulty_idx else None,
            )
            for i in parties
        ]
        return await asyncio.gather(*coroutines)

    outputs = asyncio.run(session())
    return outputs


def main():
    parser = argparse.ArgumentParser(description="Threshold EdDSA example")
    parser.add_argument(
        "--faulty-participant",
        action="store_true",
        help="When this flag is set, one random participant will send an invalid secret share to another participant during key generation.",
    )
    parser.add_argument(
        "--signers",
        type=lambda s: [int(i) for i in s.split(",")],
        default=None,
        help="Comma-separated signer indices [default = 1, ..., t + 1]",
    )
    parser.add_argument(
        "--message", default="hello", help="Message to sign [default = hello]"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log protocol steps"
    )
    parser.add_argument(
        "t", nargs="?", type=int, default=2, help="Threshold [default = 2]"
    )
    parser.add_argument(
        "n", nargs="?", type=int, default=5, help="Number of parties [default = 5]"
    )
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    params = Parameters(args.t, args.n)
    signers = args.signers if args.signers is not None else list(range(1, args.t + 2))
    message = args.message.encode()
    faulty_idx = choice(all_parties(params)) if args.faulty_participant else None

    print("====== Threshold EdDSA example session ======")
    print(f"Using n = {args.n} parties and a threshold of t = {args.t}.")
    print(f"Signers: {signers}")
    if faulty_idx is not None:
        print(f"Participant {faulty_idx} is faulty.")
    print()
    print(f"Parameters identifier: {params_id(params).hex()}")
    print()

    try:
        rets = simulate_session(params, signers, message, faulty_idx)
    except FaultyParticipantError as e:
        print(f"A participant has failed and is blaming participant {e.participant}.")
        # If the blamed participant is the faulty participant, exit with code 0.
        # Otherwise, re-raise the exception.
        if faulty_idx == e.participant:
            return 0
        else:
            raise

    threshold_pubkey, signature = rets[0]
    print("=== Threshold public key ===")
    pphex(threshold_pubkey)
    print()

    for i, (shared_keys, eph_shared_keys) in enumerate(rets[1:], start=1):
        print(f"=== Participant {i}'s outputs ===")
        pphex({"shared_keys": shared_keys, "ephemeral_shared_keys": eph_shared_keys})
        print()

    print(f"=== Signature on {message!r} ===")
    print(signature.to_bytes().hex())
    print(f"Valid: {verify(signature, message, threshold_pubkey)}")


if __name__ == "__main__":
    sys.exit(main())
