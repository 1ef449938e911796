from importlib.metadata import PackageNotFoundError, version

from .encryption import EncryptedRecord, TokenCipher
from .keys import KeyManager, PassphraseKeyManager, derive_key_from_passphrase
from .secure_input import ReadSecretOptions, SecureString, read_secret
from .tokens import TokenInfo, TokenStore, can_refresh, is_valid
from .vault import KeyringSecretStore, MemorySecretStore

try:
    __version__ = version("globus-connect-server-cli")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "EncryptedRecord",
    "KeyManager",
    "KeyringSecretStore",
    "MemorySecretStore",
    "PassphraseKeyManager",
    "ReadSecretOptions",
    "SecureString",
    "TokenCipher",
    "TokenInfo",
    "TokenStore",
    "can_refresh",
    "derive_key_from_passphrase",
    "is_valid",
    "read_secret",
    "__version__",
]
