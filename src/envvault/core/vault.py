"""
VaultStore: one vault file's secrets, encrypted at rest and decrypted on demand.

Lifecycle:
    LOCKED     file bytes framed, no keys derived; names can be listed
    UNLOCKING  Argon2id running; any failure drops back to LOCKED
    UNLOCKED   master key resident; per-secret keys derived lazily and cached
    CLOSED     every key buffer zeroed; terminal

Mutations only change the in-memory vault. save() encodes it and commits it
atomically, then hands the pending audit events to the sink. Use the store as
a context manager so close() runs on every exit path.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

from . import codec, storage
from .audit import AuditSink, current_actor, emit
from .exceptions import AuthenticationError, FormatError, NotFoundError, VaultStateError
from .models import (
    AuditEvent,
    Auth,
    KdfParams,
    PasswordKeyfile,
    SecretEntry,
    SecretMetadata,
    VaultHeader,
    VaultState,
    utc_now,
    validate_secret_name,
)
from ..security.crypto import decrypt_secret, encrypt_secret, verify_integrity_tag
from ..security.kdf import generate_salt, hash_keyfile, verify_keyfile
from ..security.session import KeySession

logger = logging.getLogger(__name__)

Value = Union[str, bytes, bytearray]


def _to_bytes(value: Value) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise TypeError(f"secret values must be str or bytes, not {type(value).__name__}")


def _keyfile_hash_for(auth: Auth) -> Optional[bytes]:
    if isinstance(auth, PasswordKeyfile):
        return hash_keyfile(auth.keyfile)
    return None


class VaultStore:
    """An encrypted vault and its key session. Build one with create(), load() or open()."""

    def __init__(
        self,
        path: Optional[Path] = None,
        frame: Optional[codec.VaultFrame] = None,
        audit_sink: Optional[AuditSink] = None,
    ):
        self.path = Path(path) if path is not None else None
        self.audit_sink = audit_sink
        self._frame = frame
        self._state = VaultState.LOCKED
        self._header: Optional[VaultHeader] = None
        self._entries: Dict[str, SecretEntry] = {}
        self._locked_entries: Optional[Tuple[SecretEntry, ...]] = None
        self._session = KeySession()
        self._dirty = False
        self._pending: List[Tuple[str, Optional[str], Optional[str]]] = []

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        auth: Auth,
        params: Optional[KdfParams] = None,
        environment: Optional[str] = None,
        path: Optional[Path] = None,
        audit_sink: Optional[AuditSink] = None,
    ) -> "VaultStore":
        """
        New, empty, unlocked vault under a fresh random salt.

        Nothing is written until save(); the vault starts dirty.
        """
        params = (params or KdfParams()).validate()
        salt = generate_salt()
        store = cls(path=path, audit_sink=audit_sink)
        store._session = KeySession.derive(auth, salt, params)
        store._header = VaultHeader(
            salt=salt,
            kdf=params,
            keyfile_hash=_keyfile_hash_for(auth),
            environment=environment,
            created_at=utc_now(),
        )
        store._state = VaultState.UNLOCKED
        store._mark_dirty("create")
        return store

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        path: Optional[Path] = None,
        audit_sink: Optional[AuditSink] = None,
    ) -> "VaultStore":
        """Locked vault over encoded bytes. Framing errors are raised here."""
        return cls(path=path, frame=codec.split(data), audit_sink=audit_sink)

    @classmethod
    def load(cls, path: Path | str, audit_sink: Optional[AuditSink] = None) -> "VaultStore":
        path = Path(path)
        return cls.from_bytes(storage.read(path), path=path, audit_sink=audit_sink)

    @classmethod
    def open(cls, path: Path | str, auth: Auth, audit_sink: Optional[AuditSink] = None) -> "VaultStore":
        """Load and unlock in one step."""
        store = cls.load(path, audit_sink=audit_sink)
        try:
            store.unlock(auth)
        except BaseException:
            store.close()
            raise
        return store

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> VaultState:
        return self._state

    @property
    def is_unlocked(self) -> bool:
        return self._state is VaultState.UNLOCKED

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def header(self) -> VaultHeader:
        self._require_unlocked()
        return self._header

    @property
    def environment(self) -> Optional[str]:
        if self._header is not None:
            return self._header.environment
        return None

    def _require_unlocked(self) -> None:
        if self._state is VaultState.UNLOCKED:
            return
        if self._state is VaultState.CLOSED:
            raise VaultStateError("vault is closed; unlock a new session to reopen it")
        raise VaultStateError(f"vault is {self._state.value}; unlock it first")

    def unlock(self, auth: Auth) -> None:
        """
        Derive the keys for ``auth`` and verify the whole-file integrity tag.

        The header's stored KDF parameters are always used. A header that
        cannot be parsed, a wrong password and a tampered file all raise
        ``AuthenticationError``; only the keyfile pre-check is told apart
        (``KeyfileMismatchError``).
        """
        if self._state is not VaultState.LOCKED:
            if self._state is VaultState.CLOSED:
                raise VaultStateError("vault is closed; load it again to unlock")
            raise VaultStateError(f"vault is already {self._state.value}")
        if self._frame is None:
            raise VaultStateError(
                "no vault data loaded; build the store with load() or from_bytes()"
            )

        frame = self._frame
        self._state = VaultState.UNLOCKING
        session = None
        try:
            try:
                header = codec.decode_header(frame.header_bytes)
            except FormatError:
                raise AuthenticationError("vault authentication failed") from None

            verify_keyfile(auth, header.keyfile_hash)
            session = KeySession.derive(auth, header.salt, header.kdf)
            verify_integrity_tag(
                session.integrity_key(), frame.header_bytes, frame.secrets_bytes, frame.tag
            )
            # authenticated from here on, so a parse error is a genuine format bug
            entries = codec.decode_secrets(frame.secrets_bytes)
        except BaseException:
            if session is not None:
                session.lock()
            self._state = VaultState.LOCKED
            raise

        self._session.lock()
        self._session = session
        self._header = header
        self._entries = {entry.name: entry for entry in entries}
        self._locked_entries = None
        self._dirty = False
        self._state = VaultState.UNLOCKED
        logger.debug("unlocked vault %s (%d secrets)", self.path or "<memory>", len(self._entries))

    def close(self) -> None:
        """Zero all key material. Idempotent; the store cannot be reused afterwards."""
        if self._state is VaultState.CLOSED:
            return
        if self._dirty:
            logger.warning("closing vault %s with uncommitted changes", self.path or "<memory>")
        logger.debug(
            "closing vault %s; wiping %d cached secret keys",
            self.path or "<memory>",
            len(self._session.cached_names()),
        )
        try:
            self._session.lock()
        finally:
            self._entries = {}
            self._locked_entries = None
            self._frame = None
            self._pending = []
            self._dirty = False
            self._state = VaultState.CLOSED

    def __enter__(self) -> "VaultStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Secret operations
    # ------------------------------------------------------------------

    def list(self) -> List[str]:
        """
        Secret names in insertion order.

        Works while locked: the secrets block is parsed (not authenticated)
        and no value is decrypted.
        """
        if self._state is VaultState.UNLOCKED:
            return list(self._entries)
        if self._state is VaultState.LOCKED and self._frame is not None:
            if self._locked_entries is None:
                self._locked_entries = codec.decode_secrets(self._frame.secrets_bytes)
            return [entry.name for entry in self._locked_entries]
        raise VaultStateError(f"vault is {self._state.value}; secrets cannot be listed")

    def __len__(self) -> int:
        return len(self.list())

    def contains(self, name: str) -> bool:
        return name in self.list()

    def __contains__(self, name: object) -> bool:
        return self.contains(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self.list())

    def metadata(self) -> List[SecretMetadata]:
        self._require_unlocked()
        return [
            SecretMetadata(name=e.name, created_at=e.created_at, updated_at=e.updated_at)
            for e in self._entries.values()
        ]

    def get(self, name: str) -> bytes:
        """Decrypt one secret. The plaintext is never logged."""
        self._require_unlocked()
        entry = self._entries.get(name)
        if entry is None:
            raise NotFoundError(f"secret '{name}' not found")
        return decrypt_secret(self._session.secret_key(name), entry.nonce, entry.ciphertext)

    def get_text(self, name: str, encoding: str = "utf-8") -> str:
        return self.get(name).decode(encoding)

    def _put(self, name: str, value: Value) -> None:
        plaintext = _to_bytes(value)
        nonce, ciphertext = encrypt_secret(self._session.secret_key(name), plaintext)
        now = utc_now()
        existing = self._entries.get(name)
        self._entries[name] = SecretEntry(
            name=name,
            nonce=nonce,
            ciphertext=ciphertext,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )

    def set(self, name: str, value: Value) -> None:
        """Create or overwrite a secret. Always encrypts under a fresh nonce."""
        self._require_unlocked()
        validate_secret_name(name)
        self._put(name, value)
        self._mark_dirty("set", key_name=name)

    def delete(self, name: str) -> None:
        self._require_unlocked()
        if name not in self._entries:
            raise NotFoundError(f"secret '{name}' not found")
        del self._entries[name]
        self._session.forget(name)
        self._mark_dirty("delete", key_name=name)

    def export_plaintext(self) -> Dict[str, bytes]:
        """Every secret decrypted, in insertion order. For interchange layers only."""
        self._require_unlocked()
        return {name: self.get(name) for name in self._entries}

    def import_plaintext(self, secrets: Mapping[str, Value]) -> int:
        """
        Set many secrets at once and return how many were written.

        All names are validated before anything changes.
        """
        self._require_unlocked()
        items = [(validate_secret_name(name), _to_bytes(value)) for name, value in secrets.items()]
        for name, value in items:
            self._put(name, value)
        if items:
            self._mark_dirty("import", details=f"{len(items)} secrets")
        return len(items)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _mark_dirty(self, operation: str, key_name: Optional[str] = None, details: Optional[str] = None) -> None:
        self._dirty = True
        self._pending.append((operation, key_name, details))

    def _flush_audit(self) -> None:
        pending, self._pending = self._pending, []
        actor = current_actor()
        for operation, key_name, details in pending:
            emit(
                self.audit_sink,
                AuditEvent(
                    operation=operation,
                    environment=self.environment,
                    actor=actor,
                    key_name=key_name,
                    details=details,
                ),
            )

    def _resolve_path(self, path: Optional[Path | str]) -> Path:
        if path is not None:
            return Path(path)
        if self.path is None:
            raise VaultStateError("vault has no file path; pass one to save()")
        return self.path

    def to_bytes(self) -> bytes:
        """Encode and seal the current in-memory vault."""
        self._require_unlocked()
        return codec.encode(self._header, self._entries.values(), self._session.integrity_key())

    def save(self, path: Optional[Path | str] = None) -> Path:
        """Atomically commit the vault; audit events go out only after the rename."""
        self._require_unlocked()
        target = self._resolve_path(path)
        storage.commit(target, self.to_bytes())
        self.path = target
        self._dirty = False
        logger.info("saved vault %s (%d secrets)", target, len(self._entries))
        try:
            storage.sync_directory(target)
        finally:
            self._flush_audit()
        return target

    def rotate_master_key(self, new_auth: Auth, params: Optional[KdfParams] = None) -> None:
        """
        Re-key the vault under ``new_auth`` and commit it.

        A new salt, master key and set of per-secret keys are derived and every
        secret is re-encrypted. The in-memory session is replaced only after
        the new file has been renamed into place; on any failure before that
        both the file on disk and this session are left as they were. A failing
        directory fsync after the rename raises with the new keys already live.
        """
        self._require_unlocked()
        target = self._resolve_path(None)
        params = (params or self._header.kdf).validate()

        plaintexts = self.export_plaintext()
        new_session = None
        try:
            salt = generate_salt()
            new_session = KeySession.derive(new_auth, salt, params)
            new_header = replace(
                self._header,
                salt=salt,
                kdf=params,
                keyfile_hash=_keyfile_hash_for(new_auth),
            )
            new_entries = {}
            for name, entry in self._entries.items():
                nonce, ciphertext = encrypt_secret(new_session.secret_key(name), plaintexts[name])
                new_entries[name] = replace(entry, nonce=nonce, ciphertext=ciphertext)
            data = codec.encode(new_header, new_entries.values(), new_session.integrity_key())
            storage.commit(target, data)
        except BaseException:
            if new_session is not None:
                new_session.lock()
            raise
        finally:
            plaintexts.clear()

        old_session, self._session = self._session, new_session
        old_session.lock()
        self._header = new_header
        self._entries = new_entries
        self._dirty = False
        self._pending.append(("rotate-key", None, f"{len(new_entries)} secrets re-encrypted"))
        logger.info("rotated master key for %s (%d secrets)", target, len(new_entries))
        try:
            storage.sync_directory(target)
        finally:
            self._flush_audit()
