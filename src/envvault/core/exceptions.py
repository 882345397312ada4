"""
Exceptions for the EnvVault engine
Everything derives from EnvVaultError so callers have one general error catcher
"""


class EnvVaultError(Exception):
    # general container for errors
    pass


class FormatError(EnvVaultError):
    # raised when vault bytes are malformed; nothing from a partial parse is usable
    pass


class TruncatedError(FormatError):
    # raised when a declared length runs past the end of the data
    pass


class UnsupportedVersionError(EnvVaultError):
    # raised when the file was written by a newer format version than this build knows

    def __init__(self, version: int, supported: int):
        super().__init__(
            f"unsupported vault format version {version} (this build supports up to {supported})"
        )
        self.version = version
        self.supported = supported


class AuthenticationError(EnvVaultError):
    # wrong password, wrong keyfile or tampered file; deliberately not told apart
    pass


class KeyfileMismatchError(AuthenticationError):
    # raised by the keyfile hash pre-check, before any expensive derivation
    pass


class NotFoundError(EnvVaultError, KeyError):
    # raised when a secret name is absent

    def __str__(self) -> str:
        return Exception.__str__(self)


class EnvironmentNotFoundError(NotFoundError):
    # raised when no vault file exists for an environment
    pass


class DuplicateError(EnvVaultError):
    # raised when creating an environment (or vault file) that already exists
    pass


class VaultStateError(EnvVaultError, RuntimeError):
    # raised when an operation is attempted in the wrong lifecycle state
    pass


class InvalidNameError(EnvVaultError, ValueError):
    # raised for secret or environment names that break the naming rules
    pass


class KeyDerivationError(EnvVaultError):
    # raised when Argon2id/HKDF parameters are rejected or hashing fails
    pass


class KeyfileError(EnvVaultError):
    # raised when a keyfile cannot be created, read or has the wrong size
    pass


class ConfigError(EnvVaultError):
    # raised for unreadable or invalid configuration
    pass


class CredentialStoreError(EnvVaultError):
    # raised when the OS credential store cannot be used
    pass


class InterchangeError(EnvVaultError, ValueError):
    # raised when a .env or JSON import source cannot be read or parsed
    pass


class CommandError(EnvVaultError):
    # raised when no command is given or the child process cannot be started
    pass
