#!/usr/bin/env python3

"""Tests for the threshold EdDSA reference implementation"""

from itertools import combinations
from random import randint, sample
from typing import List
from secrets import token_bytes as random_bytes
import threading

from nacl.signing import SigningKey, VerifyKey
from nacl.exceptions import BadSignatureError

from eddsa_tss.ed25519 import GE, G, L, Scalar, expand_private_key
from eddsa_tss.util import (
    AggregateCheckError,
    ChallengeMismatchError,
    CommitmentMismatchError,
    InsufficientParticipantsError,
    InvalidEncodingError,
    ShareVerificationError,
)
from eddsa_tss.commitment import commit, commitment_from_bytes, open_commitment
from eddsa_tss.params import (
    DuplicatePartyIndexError,
    InvalidPartyIndexError,
    Parameters,
    ThresholdOrCountError,
    all_parties,
    params_id,
    parties_validate,
)
from eddsa_tss.vss import (
    Polynomial,
    VSS,
    VSSScheme,
    lagrange_coefficient,
    reconstruct,
    reconstruct_commitment,
    share,
    verify_share,
)
from eddsa_tss.sessions import SessionError, SigningSessions
from eddsa_tss.signing import (
    LocalSig,
    Signature,
    compute_local_sig,
    generate_signature,
    verify,
    verify_local_sigs,
)
import eddsa_tss.keygen as keygen
import eddsa_tss.ephemeral as ephemeral

from example import simulate_session


#
# Helpers running all parties of a session in lockstep
#


def simulate_keygen(t: int, n: int, secrets=None):
    params = Parameters(t, n)
    parties = all_parties(params)
    if secrets is None:
        all_keys = [keygen.phase1_create(i) for i in parties]
    else:
        all_keys = [
            keygen.phase1_create_from_private_key(i, secret)
            for i, secret in zip(parties, secrets)
        ]
    bc1s = [keygen.phase1_broadcast(keys) for keys in all_keys]
    bc1_vec = [bc1 for (bc1, _) in bc1s]
    blind_factors = [b for (_, b) in bc1s]
    public_keys = [keys.public_point for keys in all_keys]

    dealt = [
        keygen.phase1_verify_com_phase2_distribute(
            keys, params, blind_factors, public_keys, bc1_vec, parties
        )
        for keys in all_keys
    ]
    vss_schemes = [vss_scheme for (vss_scheme, _) in dealt]
    shared_keys = [
        keygen.phase2_verify_vss_construct_keypair(
            keys,
            params,
            public_keys,
            [secret_shares[pos] for (_, secret_shares) in dealt],
            vss_schemes,
            keys.party_index,
        )
        for pos, keys in enumerate(all_keys)
    ]
    return params, all_keys, vss_schemes, shared_keys


def simulate_ephemeral(params, all_keys, signers: List[int], message: bytes):
    signer_keys = [all_keys[i - 1] for i in signers]
    eph_keys = [
        ephemeral.ephemeral_key_create_from_deterministic_secret(
            keys, message, keys.party_index
        )
        for keys in signer_keys
    ]
    bc1s = [ephemeral.phase1_broadcast(eph_key) for eph_key in eph_keys]
    bc1_vec = [bc1 for (bc1, _) in bc1s]
    blind_factors = [b for (_, b) in bc1s]
    R_points = [eph_key.R_i for eph_key in eph_keys]

    dealt = [
        ephemeral.phase1_verify_com_phase2_distribute(
            eph_key, params, blind_factors, R_points, bc1_vec, signers
        )
        for eph_key in eph_keys
    ]
    eph_vss_schemes = [vss_scheme for (vss_scheme, _) in dealt]
    eph_shared_keys = [
        ephemeral.phase2_verify_vss_construct_keypair(
            eph_key,
            params,
            R_points,
            [secret_shares[pos] for (_, secret_shares) in dealt],
            eph_vss_schemes,
            eph_key.party_index,
        )
        for pos, eph_key in enumerate(eph_keys)
    ]
    return eph_keys, eph_vss_schemes, eph_shared_keys


def simulate_signing(t: int, n: int, signers: List[int], message: bytes):
    params, all_keys, vss_schemes, shared_keys = simulate_keygen(t, n)
    _, eph_vss_schemes, eph_shared_keys = simulate_ephemeral(
        params, all_keys, signers, message
    )
    local_sigs = [
        compute_local_sig(message, eph_shared_keys[pos], shared_keys[i - 1])
        for pos, i in enumerate(signers)
    ]
    vss_sum = verify_local_sigs(local_sigs, signers, vss_schemes, eph_vss_schemes)
    signature = generate_signature(vss_sum, local_sigs, signers, eph_shared_keys[0].R)
    return shared_keys[0].y, signature


def assert_raises(exc_type, f, *args):
    try:
        f(*args)
    except exc_type as e:
        return e
    else:
        assert False, f"Expected {exc_type.__name__}"


#
# Curve arithmetic
#


def test_scalar_arithmetic():
    a = Scalar.random()
    b = Scalar.random()
    assert a + b - b == a
    assert (a * b) / b == a
    assert a + (-a) == 0
    assert Scalar(L) == 0
    assert Scalar(L + 5) == Scalar(5)
    assert Scalar.sum(a, b, Scalar(1)) == a + b + 1
    assert Scalar.from_bytes(a.to_bytes()) == a
    non_canonical = L.to_bytes(32, "little")
    assert_raises(InvalidEncodingError, Scalar.from_bytes_checked, non_canonical)
    assert_raises(InvalidEncodingError, Scalar.from_bytes, b"\x00" * 31)
    assert_raises(ZeroDivisionError, lambda: a / Scalar(0))


def test_group_arithmetic():
    a = Scalar.random()
    b = Scalar.random()
    assert a * G + b * G == (a + b) * G
    assert (a * b) * G == a * (b * G)
    assert a * G - a * G == GE()
    assert (a * G + (-(a * G))).infinity
    assert Scalar(0) * G == GE()
    assert GE.sum(a * G, b * G, GE()) == (a + b) * G
    assert GE.batch_mul((a, G), (b, G)) == (a + b) * G
    assert GE.from_bytes((a * G).to_bytes()) == a * G
    assert L * G == GE()


def test_point_decoding():
    assert_raises(InvalidEncodingError, GE.from_bytes, b"\x01" * 31)
    # The identity is a small-order point.
    assert_raises(InvalidEncodingError, GE.from_bytes, b"\x01" + b"\x00" * 31)
    # y = 2^255 - 1 is not canonical.
    assert_raises(InvalidEncodingError, GE.from_bytes, b"\xff" * 32)

    assert GE.from_bytes_with_infinity(GE().to_bytes()) == GE()
    assert GE.from_bytes_with_infinity(G.to_bytes()) == G
    assert_raises(InvalidEncodingError, GE.from_bytes_with_infinity, b"\xff" * 32)


def test_expand_private_key_matches_ed25519():
    for _ in range(4):
        secret = random_bytes(32)
        scalar, _ = expand_private_key(secret)
        assert (scalar * G).to_bytes() == bytes(SigningKey(secret).verify_key)


#
# Commitments
#


def test_commitment():
    value = Scalar.random() * G
    c = commit(value.to_bytes())
    assert open_commitment(c.com, c.blind_factor, value.to_bytes())
    assert not open_commitment(c.com, c.blind_factor + 1, value.to_bytes())
    assert not open_commitment(c.com, c.blind_factor, (Scalar(2) * value).to_bytes())
    assert not open_commitment(c.com, -1, value.to_bytes())
    assert commitment_from_bytes(c.com_bytes()) == c.com
    # Fresh blind factors make commitments to equal values differ.
    assert commit(value.to_bytes()).com != c.com


#
# Parameters
#


def test_params_validate():
    assert len(params_id(Parameters(2, 5))) == 32
    assert params_id(Parameters(2, 5)) != params_id(Parameters(2, 4))
    for t, n in [(0, 3), (3, 3), (4, 3), (-1, 2), (1, 2**16)]:
        assert_raises(ThresholdOrCountError, params_id, Parameters(t, n))

    params = Parameters(2, 5)
    parties_validate(params, [1, 3, 5])
    e = assert_raises(InvalidPartyIndexError, parties_validate, params, [0, 1, 2])
    assert e.participant == 0
    e = assert_raises(InvalidPartyIndexError, parties_validate, params, [1, 2, 6])
    assert e.participant == 6
    e = assert_raises(DuplicatePartyIndexError, parties_validate, params, [1, 3, 3])
    assert (e.participant, e.position1, e.position2) == (3, 1, 2)
    assert_raises(InsufficientParticipantsError, parties_validate, params, [1, 3])


#
# VSS
#


def test_vss_correctness():
    def rand_polynomial(t):
        return Polynomial([Scalar(randint(1, L - 1)) for _ in range(t + 1)])

    for t in range(1, 3):
        for n in range(t + 1, 2 * t + 2):
            parties = list(range(1, n + 1))
            vss = VSS(rand_polynomial(t))
            secshares = vss.secshares(parties)
            vss_scheme = vss.commit(parties)
            assert len(secshares) == n
            assert len(vss_scheme.commitments) == t + 1
            assert vss_scheme.commitment_to_secret() == vss.secret() * G
            assert all(
                vss_scheme.validate_share(secshares[pos], i)
                for pos, i in enumerate(parties)
            )
            assert all(
                verify_share(i, secshares[pos], vss_scheme.commitments)
                for pos, i in enumerate(parties)
            )


def test_vss_share_rejects_wrong_share():
    secret = Scalar.random()
    vss_scheme, shares = share(secret, 2, [1, 2, 3, 4])
    assert not vss_scheme.validate_share(shares[0] + Scalar(1), 1)
    # A valid share is only valid at its own index.
    assert not vss_scheme.validate_share(shares[0], 2)
    assert not verify_share(3, shares[1], vss_scheme.commitments)


def test_vss_generate_deterministic():
    secret = Scalar.random()
    seed = random_bytes(32)
    a, shares_a = share(secret, 2, [1, 3, 5], seed)
    b, shares_b = share(secret, 2, [1, 3, 5], seed)
    c, _ = share(secret, 2, [1, 3, 5], random_bytes(32))
    assert a == b and shares_a == shares_b
    assert a != c
    assert a.commitment_to_secret() == c.commitment_to_secret()


def test_recover_secret():
    f = Polynomial([Scalar(23), Scalar(42)])
    shares = [f(Scalar(i)) for i in [1, 2, 3]]
    assert reconstruct(1, [1, 2], [shares[0], shares[1]]) == f.coeffs[0]
    assert reconstruct(1, [1, 3], [shares[0], shares[2]]) == f.coeffs[0]
    assert reconstruct(1, [2, 3], [shares[1], shares[2]]) == f.coeffs[0]
    assert reconstruct(1, [3, 1, 2], [shares[2], shares[0], shares[1]]) == f.coeffs[0]


def test_reconstruct_thresholds():
    t, n = 2, 5
    secret = Scalar.random()
    vss_scheme, shares = share(secret, t, all_parties(Parameters(t, n)))
    for k in range(1, n + 1):
        for subset in combinations(range(1, n + 1), k):
            subset_shares = [shares[i - 1] for i in subset]
            if k <= t:
                assert_raises(
                    InsufficientParticipantsError, reconstruct, t, subset, subset_shares
                )
            else:
                assert reconstruct(t, subset, subset_shares) == secret
                assert vss_scheme.reconstruct(subset, subset_shares) == secret
                points = [s * G for s in subset_shares]
                assert reconstruct_commitment(t, subset, points) == secret * G
    assert_raises(ValueError, reconstruct, t, [1, 2, 2, 3], shares[:4])


def test_lagrange_coefficients_sum_to_one():
    indices = [2, 5, 7, 11]
    assert Scalar.sum(*(lagrange_coefficient(indices, i) for i in indices)) == 1


def test_vss_scheme_encoding():
    vss_scheme, _ = share(Scalar.random(), 2, [1, 3, 5])
    b = vss_scheme.to_bytes()
    assert len(b) == 2 + 2 + 2 * 3 + 32 * 3
    decoded = VSSScheme.from_bytes(b)
    assert decoded == vss_scheme
    assert decoded.parties == [1, 3, 5]
    assert decoded.share_count == 3
    assert_raises(InvalidEncodingError, VSSScheme.from_bytes, b[:-1])
    assert_raises(InvalidEncodingError, VSSScheme.from_bytes, b"\x00")


def test_vss_scheme_encoding_zero_coefficient():
    vss = VSS(Polynomial([Scalar(5), Scalar(0), Scalar(7)]))
    vss_scheme = vss.commit([1, 2, 3])
    assert vss_scheme.commitments[1] == GE()
    decoded = VSSScheme.from_bytes(vss_scheme.to_bytes())
    assert decoded == vss_scheme
    assert all(
        decoded.validate_share(s, i)
        for i, s in zip([1, 2, 3], vss.secshares([1, 2, 3]))
    )


def test_vss_rejects_mismatched_inputs():
    a, _ = share(Scalar.random(), 1, [1, 2, 3])
    b, _ = share(Scalar.random(), 2, [1, 2, 3])
    c, _ = share(Scalar.random(), 1, [3, 2, 1])
    assert_raises(ValueError, lambda: a + b)
    assert_raises(ValueError, lambda: a + c)
    assert (a + a).commitments == [Scalar(2) * p for p in a.commitments]
    assert_raises(ValueError, lagrange_coefficient, [1, 2, 3], 4)
    assert_raises(ValueError, lagrange_coefficient, [1, 2, 2], 1)


#
# Key generation
#


def check_keygen_outputs(t, n, vss_schemes, shared_keys):
    ys = set(sk.y for sk in shared_keys)
    assert len(ys) == 1
    y = shared_keys[0].y
    assert y == GE.sum(*(v.commitment_to_secret() for v in vss_schemes))

    pubshares = keygen.pubshares(vss_schemes)
    for i, sk in enumerate(shared_keys, start=1):
        assert sk.x_i * G == pubshares[i - 1]

    # Any t + 1 parties can recover the threshold key, t parties cannot.
    for subset in combinations(range(1, n + 1), t + 1):
        secret = reconstruct(t, subset, [shared_keys[i - 1].x_i for i in subset])
        assert secret * G == y
    subset = list(range(1, t + 1))
    assert_raises(
        InsufficientParticipantsError,
        reconstruct,
        t,
        subset,
        [shared_keys[i - 1].x_i for i in subset],
    )


def test_keygen_correctness():
    for t, n in [(1, 2), (1, 3), (2, 3), (2, 5), (3, 5)]:
        _, _, vss_schemes, shared_keys = simulate_keygen(t, n)
        assert all(len(v.commitments) == t + 1 for v in vss_schemes)
        check_keygen_outputs(t, n, vss_schemes, shared_keys)


def test_keygen_from_private_keys():
    secrets = [random_bytes(32) for _ in range(3)]
    _, all_keys, vss_schemes, shared_keys = simulate_keygen(1, 3, secrets)
    for keys, secret in zip(all_keys, secrets):
        assert keys.public_point.to_bytes() == bytes(SigningKey(secret).verify_key)
    y = GE.sum(*(keys.public_point for keys in all_keys))
    assert all(sk.y == y for sk in shared_keys)
    assert_raises(ValueError, keygen.phase1_create_from_private_key, 1, b"\x00" * 31)
    assert_raises(ValueError, keygen.phase1_create, 0)


def test_keygen_commitment_tampering():
    t, n = 2, 4
    params = Parameters(t, n)
    parties = all_parties(params)
    all_keys = [keygen.phase1_create(i) for i in parties]
    bc1s = [keygen.phase1_broadcast(keys) for keys in all_keys]
    blind_factors = [b for (_, b) in bc1s]
    public_keys = [keys.public_point for keys in all_keys]

    for victim in parties:
        com_bytes = bc1s[victim - 1][0].com.to_bytes(32, "big")
        for pos in range(len(com_bytes)):
            tampered = bytearray(com_bytes)
            tampered[pos] ^= 0x01
            bc1_vec = [bc1 for (bc1, _) in bc1s]
            bc1_vec[victim - 1] = keygen.KeyGenBroadcastMessage1(
                commitment_from_bytes(bytes(tampered))
            )
            # Every other party detects the tampered commitment.
            for keys in all_keys:
                if keys.party_index == victim:
                    continue
                e = assert_raises(
                    CommitmentMismatchError,
                    keygen.phase1_verify_com_phase2_distribute,
                    keys,
                    params,
                    blind_factors,
                    public_keys,
                    bc1_vec,
                    parties,
                )
                assert e.participant == victim


def test_keygen_wrong_public_key_revealed():
    t, n = 1, 3
    params = Parameters(t, n)
    parties = all_parties(params)
    all_keys = [keygen.phase1_create(i) for i in parties]
    bc1s = [keygen.phase1_broadcast(keys) for keys in all_keys]
    bc1_vec = [bc1 for (bc1, _) in bc1s]
    blind_factors = [b for (_, b) in bc1s]
    public_keys = [keys.public_point for keys in all_keys]
    # Party 3 reveals another key than it committed to.
    public_keys[2] = keygen.phase1_create(3).public_point
    e = assert_raises(
        CommitmentMismatchError,
        keygen.phase1_verify_com_phase2_distribute,
        all_keys[0],
        params,
        blind_factors,
        public_keys,
        bc1_vec,
        parties,
    )
    assert e.participant == 3


def test_keygen_invalid_share():
    t, n = 2, 4
    params = Parameters(t, n)
    parties = all_parties(params)
    all_keys = [keygen.phase1_create(i) for i in parties]
    bc1s = [keygen.phase1_broadcast(keys) for keys in all_keys]
    bc1_vec = [bc1 for (bc1, _) in bc1s]
    blind_factors = [b for (_, b) in bc1s]
    public_keys = [keys.public_point for keys in all_keys]
    dealt = [
        keygen.phase1_verify_com_phase2_distribute(
            keys, params, blind_factors, public_keys, bc1_vec, parties
        )
        for keys in all_keys
    ]
    vss_schemes = [v for (v, _) in dealt]

    faulty, victim = sample(parties, 2)
    shares_for_victim = [shares[victim - 1] for (_, shares) in dealt]
    shares_for_victim[faulty - 1] += Scalar(17)
    e = assert_raises(
        ShareVerificationError,
        keygen.phase2_verify_vss_construct_keypair,
        all_keys[victim - 1],
        params,
        public_keys,
        shares_for_victim,
        vss_schemes,
        victim,
    )
    assert e.participant == faulty

    # A VSS scheme that does not commit to the revealed public key.
    shares_for_victim = [shares[victim - 1] for (_, shares) in dealt]
    other_scheme, other_shares = share(Scalar.random(), t, parties)
    bad_schemes = list(vss_schemes)
    bad_schemes[faulty - 1] = other_scheme
    shares_for_victim[faulty - 1] = other_shares[victim - 1]
    e = assert_raises(
        ShareVerificationError,
        keygen.phase2_verify_vss_construct_keypair,
        all_keys[victim - 1],
        params,
        public_keys,
        shares_for_victim,
        bad_schemes,
        victim,
    )
    assert e.participant == faulty


def test_keygen_vss_scheme_party_order():
    t, n = 1, 3
    params = Parameters(t, n)
    parties = all_parties(params)
    all_keys = [keygen.phase1_create(i) for i in parties]
    bc1s = [keygen.phase1_broadcast(keys) for keys in all_keys]
    bc1_vec = [bc1 for (bc1, _) in bc1s]
    blind_factors = [b for (_, b) in bc1s]
    public_keys = [keys.public_point for keys in all_keys]
    dealt = [
        keygen.phase1_verify_com_phase2_distribute(
            keys, params, blind_factors, public_keys, bc1_vec, parties
        )
        for keys in all_keys
    ]
    vss_schemes = [v for (v, _) in dealt]
    # Party 2's scheme lists the parties in another order.
    vss_schemes[1] = VSSScheme(t, [3, 2, 1], vss_schemes[1].commitments)
    e = assert_raises(
        ShareVerificationError,
        keygen.phase2_verify_vss_construct_keypair,
        all_keys[0],
        params,
        public_keys,
        [shares[0] for (_, shares) in dealt],
        vss_schemes,
        1,
    )
    assert e.participant == 2


def test_shared_keys_encoding():
    _, _, _, shared_keys = simulate_keygen(1, 2)
    for sk in shared_keys:
        assert keygen.SharedKeys.from_bytes(sk.to_bytes()) == sk
    assert_raises(InvalidEncodingError, keygen.SharedKeys.from_bytes, b"\x00" * 95)


#
# Ephemeral key generation
#


def test_ephemeral_determinism():
    params, all_keys, _, _ = simulate_keygen(2, 5)
    signers = [1, 3, 5]
    _, eph_vss_a, eph_a = simulate_ephemeral(params, all_keys, signers, b"hello")
    _, eph_vss_b, eph_b = simulate_ephemeral(params, all_keys, signers, b"hello")
    assert eph_a == eph_b
    assert eph_vss_a == eph_vss_b
    assert len(set(e.R for e in eph_a)) == 1

    _, _, eph_c = simulate_ephemeral(params, all_keys, signers, b"hello!")
    assert eph_c[0].R != eph_a[0].R
    assert all(c.r_i != a.r_i for a, c in zip(eph_a, eph_c))
    assert all(c.session_id != a.session_id for a, c in zip(eph_a, eph_c))

    # The combined nonce is shared among the signers.
    r = reconstruct(2, signers, [e.r_i for e in eph_a])
    assert r * G == eph_a[0].R


def test_ephemeral_session_id():
    keys = keygen.phase1_create(2)
    eph_key = ephemeral.ephemeral_key_create_from_deterministic_secret(keys, b"m", 2)
    assert eph_key.session_id == ephemeral.session_id(keys.key_identity(), b"m", 2)
    assert eph_key.session_id != ephemeral.session_id(keys.key_identity(), b"m", 3)
    assert eph_key.session_id != ephemeral.session_id(keys.key_identity(), b"n", 2)
    assert_raises(
        ValueError,
        ephemeral.ephemeral_key_create_from_deterministic_secret,
        keys,
        b"m",
        3,
    )


def test_ephemeral_commitment_tampering():
    params, all_keys, _, _ = simulate_keygen(1, 3)
    signers = [1, 3]
    eph_keys = [
        ephemeral.ephemeral_key_create_from_deterministic_secret(
            all_keys[i - 1], b"msg", i
        )
        for i in signers
    ]
    bc1s = [ephemeral.phase1_broadcast(eph_key) for eph_key in eph_keys]
    bc1_vec = [bc1 for (bc1, _) in bc1s]
    blind_factors = [b for (_, b) in bc1s]
    R_points = [eph_key.R_i for eph_key in eph_keys]
    blind_factors[1] ^= 1
    e = assert_raises(
        CommitmentMismatchError,
        ephemeral.phase1_verify_com_phase2_distribute,
        eph_keys[0],
        params,
        blind_factors,
        R_points,
        bc1_vec,
        signers,
    )
    assert e.participant == 3


def test_ephemeral_too_few_signers():
    params, all_keys, _, _ = simulate_keygen(2, 4)
    assert_raises(
        InsufficientParticipantsError,
        simulate_ephemeral,
        params,
        all_keys,
        [1, 2],
        b"msg",
    )


def test_ephemeral_shared_keys_encoding():
    params, all_keys, _, _ = simulate_keygen(1, 2)
    _, _, eph_shared_keys = simulate_ephemeral(params, all_keys, [1, 2], b"msg")
    e = eph_shared_keys[0]
    decoded = ephemeral.EphemeralSharedKeys.from_bytes(e.to_bytes())
    assert (decoded.R, decoded.r_i) == (e.R, e.r_i)
    assert decoded.session_id is None


#
# Signing
#


def test_signing_3_of_5_example():
    signers = [1, 3, 5]
    y, signature = simulate_signing(2, 5, signers, b"hello")
    assert verify(signature, b"hello", y)
    assert not verify(signature, b"hello!", y)
    # The result is an ordinary Ed25519 signature.
    VerifyKey(y.to_bytes()).verify(b"hello", signature.to_bytes())


def test_signing_all_subsets():
    for t, n in [(1, 2), (1, 3), (2, 3), (2, 4)]:
        params, all_keys, vss_schemes, shared_keys = simulate_keygen(t, n)
        y = shared_keys[0].y
        message = random_bytes(randint(0, 64))
        for signers in combinations(range(1, n + 1), t + 1):
            signers = list(signers)
            _, eph_vss_schemes, eph_shared_keys = simulate_ephemeral(
                params, all_keys, signers, message
            )
            local_sigs = [
                compute_local_sig(message, eph_shared_keys[pos], shared_keys[i - 1])
                for pos, i in enumerate(signers)
            ]
            vss_sum = verify_local_sigs(
                local_sigs, signers, vss_schemes, eph_vss_schemes
            )
            signature = generate_signature(
                vss_sum, local_sigs, signers, eph_shared_keys[0].R
            )
            assert verify(signature, message, y)
            VerifyKey(y.to_bytes()).verify(message, signature.to_bytes())


def test_signing_more_than_threshold():
    y, signature = simulate_signing(1, 4, [1, 2, 3, 4], b"all of us")
    assert verify(signature, b"all of us", y)


def test_signing_insufficient_signers():
    t, n = 2, 5
    params, all_keys, vss_schemes, shared_keys = simulate_keygen(t, n)
    message = b"hello"
    signers = [1, 3, 5]
    _, eph_vss_schemes, eph_shared_keys = simulate_ephemeral(
        params, all_keys, signers, message
    )
    local_sigs = [
        compute_local_sig(message, eph_shared_keys[pos], shared_keys[i - 1])
        for pos, i in enumerate(signers)
    ]
    vss_sum = verify_local_sigs(local_sigs, signers, vss_schemes, eph_vss_schemes)
    for k in range(0, t + 1):
        for subset in combinations(range(len(signers)), k):
            sub_signers = [signers[pos] for pos in subset]
            sub_sigs = [local_sigs[pos] for pos in subset]
            assert_raises(
                InsufficientParticipantsError,
                verify_local_sigs,
                sub_sigs,
                sub_signers,
                vss_schemes,
                eph_vss_schemes,
            )
            assert_raises(
                InsufficientParticipantsError,
                generate_signature,
                vss_sum,
                sub_sigs,
                sub_signers,
                eph_shared_keys[0].R,
            )
    # Repeating a signer does not count twice.
    assert_raises(
        InsufficientParticipantsError,
        verify_local_sigs,
        local_sigs[:2] + local_sigs[:1],
        [1, 3, 1],
        vss_schemes,
        eph_vss_schemes,
    )


def test_signing_message_substitution():
    t, n = 2, 5
    params, all_keys, vss_schemes, shared_keys = simulate_keygen(t, n)
    signers = [1, 3, 5]
    _, eph_vss_schemes, eph_shared_keys = simulate_ephemeral(
        params, all_keys, signers, b"hello"
    )
    messages = [b"hello", b"goodbye", b"hello"]
    local_sigs = [
        compute_local_sig(messages[pos], eph_shared_keys[pos], shared_keys[i - 1])
        for pos, i in enumerate(signers)
    ]
    e = assert_raises(
        ChallengeMismatchError,
        verify_local_sigs,
        local_sigs,
        signers,
        vss_schemes,
        eph_vss_schemes,
    )
    assert e.participant == 3


def test_signing_invalid_local_sig():
    t, n = 1, 3
    params, all_keys, vss_schemes, shared_keys = simulate_keygen(t, n)
    signers = [2, 3]
    message = b"msg"
    _, eph_vss_schemes, eph_shared_keys = simulate_ephemeral(
        params, all_keys, signers, message
    )
    local_sigs = [
        compute_local_sig(message, eph_shared_keys[pos], shared_keys[i - 1])
        for pos, i in enumerate(signers)
    ]
    gamma_i, k = local_sigs[1]
    local_sigs[1] = LocalSig(gamma_i + Scalar(1), k)
    e = assert_raises(
        AggregateCheckError,
        verify_local_sigs,
        local_sigs,
        signers,
        vss_schemes,
        eph_vss_schemes,
    )
    assert e.participant == 3


def test_signature_encoding_and_rejection():
    y, signature = simulate_signing(1, 2, [1, 2], b"msg")
    b = signature.to_bytes()
    assert len(b) == 64
    assert Signature.from_bytes(b) == signature
    assert LocalSig.from_bytes(LocalSig(Scalar(5), Scalar(7)).to_bytes()) == LocalSig(
        Scalar(5), Scalar(7)
    )

    # Non-canonical s
    bad_s = b[:32] + L.to_bytes(32, "little")
    assert_raises(InvalidEncodingError, Signature.from_bytes, bad_s)
    assert_raises(InvalidEncodingError, Signature.from_bytes, b[:63])

    R, s = signature
    assert not verify(Signature(R, s + Scalar(1)), b"msg", y)
    assert not verify(Signature(Scalar(3) * G, s), b"msg", y)
    assert not verify(signature, b"msg", Scalar(3) * G)
    assert not verify(Signature(GE(), s), b"msg", y)
    try:
        VerifyKey(y.to_bytes()).verify(b"msh", b)
    except BadSignatureError:
        pass
    else:
        assert False, "Expected exception"


def test_verify_accepts_ed25519_signatures():
    sk = SigningKey.generate()
    signed = sk.sign(b"plain ed25519")
    signature = Signature.from_bytes(signed.signature)
    pk = GE.from_bytes(bytes(sk.verify_key))
    assert verify(signature, b"plain ed25519", pk)


#
# Sessions
#


def test_signing_sessions():
    t, n = 1, 2
    params, all_keys, vss_schemes, shared_keys = simulate_keygen(t, n)
    signers = [1, 2]
    message = b"session message"
    _, eph_vss_schemes, eph_shared_keys = simulate_ephemeral(
        params, all_keys, signers, message
    )

    sessions = SigningSessions()
    eph_key = sessions.open(all_keys[0], message, 1)
    sid = eph_key.session_id
    assert sid in sessions and len(sessions) == 1
    assert sessions.open(all_keys[0], message, 1) == eph_key
    assert sessions.get(sid) == eph_key

    e = assert_raises(SessionError, sessions.sign, sid, message, shared_keys[0])
    assert e.session_id == sid
    sessions.complete(sid, eph_shared_keys[0])
    assert_raises(SessionError, sessions.complete, sid, eph_shared_keys[0])

    # A nonce may only ever sign the message it was created for.
    assert_raises(SessionError, sessions.sign, sid, b"other message", shared_keys[0])
    local_sig = sessions.sign(sid, message, shared_keys[0])
    assert local_sig == compute_local_sig(message, eph_shared_keys[0], shared_keys[0])
    assert_raises(SessionError, sessions.sign, sid, message, shared_keys[0])
    assert_raises(SessionError, sessions.open, all_keys[0], message, 1)

    # A second, concurrent session for another message is independent.
    other = sessions.open(all_keys[0], b"another", 1)
    assert other.session_id != sid and other.r_i != eph_key.r_i
    assert_raises(SessionError, sessions.complete, other.session_id, eph_shared_keys[0])

    sessions.discard(other.session_id)
    assert other.session_id not in sessions
    assert_raises(SessionError, sessions.get, other.session_id)
    assert_raises(SessionError, sessions.open, all_keys[0], b"another", 1)


def test_signing_sessions_no_rerun_after_discard():
    t, n = 1, 2
    params, all_keys, vss_schemes, shared_keys = simulate_keygen(t, n)
    signers = [1, 2]
    message = b"pay 1 coin"
    _, _, eph_shared_keys = simulate_ephemeral(params, all_keys, signers, message)

    sessions = SigningSessions()
    sid = sessions.open(all_keys[0], message, 1).session_id
    sessions.complete(sid, eph_shared_keys[0])
    sessions.sign(sid, message, shared_keys[0])
    sessions.discard(sid)
    assert sid not in sessions
    e = assert_raises(SessionError, sessions.open, all_keys[0], message, 1)
    assert e.session_id == sid

    # Party 2 contributes a different nonce in a second run. Party 1's
    # contribution is the same, so a second local signature under the new
    # combined nonce would reveal x_1.
    other_keys = [all_keys[0], keygen.phase1_create(2)]
    _, _, eph_shared_keys2 = simulate_ephemeral(params, other_keys, signers, message)
    assert eph_shared_keys2[0].session_id == sid
    assert eph_shared_keys2[0].R != eph_shared_keys[0].R
    assert_raises(SessionError, sessions.complete, sid, eph_shared_keys2[0])
    assert_raises(SessionError, sessions.sign, sid, message, shared_keys[0])

    # Discarding a session before it signed closes it as well.
    sid2 = sessions.open(all_keys[0], b"pay 2 coins", 1).session_id
    sessions.discard(sid2)
    assert_raises(SessionError, sessions.open, all_keys[0], b"pay 2 coins", 1)
    assert len(sessions) == 0


def test_signing_sessions_complete_checks_session():
    t, n = 1, 2
    params, all_keys, _, _ = simulate_keygen(t, n)
    signers = [1, 2]
    message = b"msg"
    _, _, eph_shared_keys = simulate_ephemeral(params, all_keys, signers, message)

    sessions = SigningSessions()
    sid = sessions.open(all_keys[0], message, 1).session_id
    # Decoded nonce shares carry no session id.
    decoded = ephemeral.EphemeralSharedKeys.from_bytes(eph_shared_keys[0].to_bytes())
    assert_raises(SessionError, sessions.complete, sid, decoded)
    # Another signer's nonce share belongs to that signer's session.
    assert eph_shared_keys[1].session_id != sid
    assert_raises(SessionError, sessions.complete, sid, eph_shared_keys[1])
    sessions.complete(sid, eph_shared_keys[0])


def test_signing_sessions_concurrent_open():
    keys = keygen.phase1_create(1)
    sessions = SigningSessions()
    messages = [bytes([i]) * 8 for i in range(16)]
    results = {}

    def worker(message):
        results[message] = sessions.open(keys, message, 1)

    threads = [threading.Thread(target=worker, args=(m,)) for m in messages]
    for th in threads:
        th.start()
    for th in threads:
        th.join()
    assert len(sessions) == len(messages)
    assert len(set(r.session_id for r in results.values())) == len(messages)


#
# Full simulated session
#


def test_example_session():
    params = Parameters(2, 5)
    signers = [1, 3, 5]
    rets = simulate_session(params, signers, b"hello")
    assert len(rets) == params.share_count + 1
    y, signature = rets[0]
    assert verify(signature, b"hello", y)
    for i, (shared_keys, eph_shared_keys) in enumerate(rets[1:], start=1):
        assert shared_keys.y == y
        if i in signers:
            assert eph_shared_keys.R == signature.R
        else:
            assert eph_shared_keys is None


def test_example_session_faulty_participant():
    params = Parameters(1, 3)
    for faulty_idx in all_parties(params):
        e = assert_raises(
            ShareVerificationError,
            simulate_session,
            params,
            [1, 2],
            b"hello",
            faulty_idx,
        )
        assert e.participant == faulty_idx


if __name__ == "__main__":
    for name, f in list(globals().items()):
        if name.startswith("test_") and callable(f):
            f()
    print("All tests passed.")
