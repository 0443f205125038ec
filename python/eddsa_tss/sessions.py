"""Bookkeeping for concurrent signing sessions of a single party.

A party may take part in several signing sessions at once. Each session owns an
ephemeral key and, once ephemeral key generation is complete, the
`EphemeralSharedKeys`. A `SigningSessions` object keys this state by session id
so that sessions never alias each other's nonces, binds each nonce to the
message it was created for, and allows computing exactly one local signature
per session.

A session is closed for good once it has produced its local signature or has
been discarded. Its id is remembered after the key material is dropped, and
opening it again fails. Ephemeral keys are derived deterministically, so
reopening a closed session would run ephemeral key generation with the same
nonce contribution again.

The object is owned by the caller; there is no process-wide registry.
"""

import hashlib
import logging
import threading
from typing import Dict, Optional, Set

from .ephemeral import (
    EphemeralKey,
    EphemeralSharedKeys,
    ephemeral_key_create_from_deterministic_secret,
)
from .keygen import PartyKeys, SharedKeys
from .signing import LocalSig, compute_local_sig

logger = logging.getLogger(__name__)


class SessionError(ValueError):
    """Raised if a signing session is unknown, incomplete or reused.

    Attributes:
        session_id (bytes): The session identifier.
    """

    def __init__(self, session_id: bytes, *args: object):
        self.session_id = session_id
        super().__init__(session_id, *args)


class _Session:
    def __init__(self, eph_key: EphemeralKey, message_hash: bytes) -> None:
        self.eph_key = eph_key
        self.message_hash = message_hash
        self.eph_shared_keys: Optional[EphemeralSharedKeys] = None


def _message_hash(message: bytes) -> bytes:
    return hashlib.sha256(message).digest()


class SigningSessions:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: Dict[bytes, _Session] = {}
        # Ids of sessions that have signed or were discarded
        self._closed: Set[bytes] = set()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: bytes) -> bool:
        with self._lock:
            return session_id in self._sessions

    def open(self, keys: PartyKeys, message: bytes, index: int) -> EphemeralKey:
        """Create (or return the existing) ephemeral key for signing `message`.

        Raises:
            SessionError: If the session has already produced a local
                signature or has been discarded.
        """
        eph_key = ephemeral_key_create_from_deterministic_secret(keys, message, index)
        sid = eph_key.session_id
        with self._lock:
            if sid in self._closed:
                logger.warning("Refusing to reopen closed session %s", sid.hex())
                raise SessionError(sid, "Session has been used or discarded")
            session = self._sessions.get(sid)
            if session is not None:
                return session.eph_key
            self._sessions[sid] = _Session(eph_key, _message_hash(message))
        logger.debug("Opened signing session %s", sid.hex())
        return eph_key

    def get(self, session_id: bytes) -> EphemeralKey:
        with self._lock:
            return self._get(session_id).eph_key

    def complete(self, session_id: bytes, eph_shared_keys: EphemeralSharedKeys) -> None:
        """Store the result of ephemeral key generation for the session.

        Raises:
            SessionError: If the session is unknown or closed, has already
                been completed, or `eph_shared_keys` was not constructed in
                this session. Values decoded with
                `EphemeralSharedKeys.from_bytes` carry no session id and are
                rejected.
        """
        # The session id commits to the signer's public key and index, so a
        # matching id also binds the nonce share to this signer.
        if eph_shared_keys.session_id != session_id:
            raise SessionError(session_id, "Nonce does not belong to this session")
        with self._lock:
            session = self._get(session_id)
            if session.eph_shared_keys is not None:
                raise SessionError(session_id, "Session already completed")
            session.eph_shared_keys = eph_shared_keys

    def sign(
        self, session_id: bytes, message: bytes, shared_keys: SharedKeys
    ) -> LocalSig:
        """Compute the session's single local signature on `message`.

        The session is closed afterwards.

        Raises:
            SessionError: If the session is unknown or closed, ephemeral key
                generation has not been completed, or the session was opened
                for another message.
        """
        with self._lock:
            session = self._get(session_id)
            if session.eph_shared_keys is None:
                raise SessionError(session_id, "Ephemeral key generation incomplete")
            if session.message_hash != _message_hash(message):
                logger.warning(
                    "Refusing to sign another message in session %s", session_id.hex()
                )
                raise SessionError(
                    session_id, "Session was opened for another message"
                )
            eph_shared_keys = session.eph_shared_keys
            self._close(session_id)
        return compute_local_sig(message, eph_shared_keys, shared_keys)

    def discard(self, session_id: bytes) -> None:
        # Abandoning a session drops its key material but keeps it closed.
        # Published commitments cannot be taken back.
        with self._lock:
            self._close(session_id)

    def _close(self, session_id: bytes) -> None:
        self._sessions.pop(session_id, None)
        self._closed.add(session_id)

    def _get(self, session_id: bytes) -> _Session:
        if session_id in self._closed:
            raise SessionError(session_id, "Session has been used or discarded")
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionError(session_id, "Unknown session")
        return session
