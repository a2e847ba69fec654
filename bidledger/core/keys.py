"""
Key Manager - Credential handover for acquired accounts.

The ledger only decides *who* may take an account over. Installing the
new owner's key and revoking the old one is delegated to a key manager.
The handover runs after the acquisition right has been consumed and is
allowed to fail on its own; the ledger logs the failure and keeps the
right consumed.
"""

from typing import Dict, List, Optional, Protocol

from bidledger.crypto import bytes_to_hex, key_fingerprint
from bidledger.utils.logger import get_logger

logger = get_logger("keys")


class KeyManagerError(Exception):
    """A key operation could not be applied."""


class KeyManager(Protocol):
    """Full-access key control over marketplace accounts."""

    def add_full_access_key(self, account_id: str, public_key: bytes) -> None:
        ...

    def delete_key(self, account_id: str, public_key: bytes) -> None:
        ...


class InMemoryKeyManager:
    """
    Key manager keeping account keys in memory.

    Keys are tracked by fingerprint (last 20 bytes of keccak256).
    """

    def __init__(self):
        # account_id -> fingerprint -> public key
        self.keys: Dict[str, Dict[str, bytes]] = {}

    def add_full_access_key(self, account_id: str, public_key: bytes) -> None:
        if len(public_key) != 64:
            raise KeyManagerError(f"Public key must be 64 bytes, got {len(public_key)}")
        fingerprint = key_fingerprint(public_key)
        account_keys = self.keys.setdefault(account_id, {})
        if fingerprint in account_keys:
            raise KeyManagerError(f"Key {fingerprint} already installed on {account_id}")
        account_keys[fingerprint] = public_key
        logger.info(f"Installed key {fingerprint} on {account_id}")

    def delete_key(self, account_id: str, public_key: bytes) -> None:
        fingerprint = key_fingerprint(public_key)
        account_keys = self.keys.get(account_id, {})
        if fingerprint not in account_keys:
            raise KeyManagerError(f"Key {fingerprint} not found on {account_id}")
        del account_keys[fingerprint]
        logger.info(f"Revoked key {fingerprint} from {account_id}")

    def has_key(self, account_id: str, public_key: bytes) -> bool:
        return key_fingerprint(public_key) in self.keys.get(account_id, {})

    def list_keys(self, account_id: str) -> List[str]:
        """Installed keys of an account as hex credentials."""
        return [bytes_to_hex(k) for k in self.keys.get(account_id, {}).values()]


def hand_over(
    key_manager: KeyManager,
    account_id: str,
    new_public_key: bytes,
    old_public_key: Optional[bytes] = None,
) -> bool:
    """
    Install the new owner's key, then revoke the previous key.

    Revocation only runs if installation succeeded. Failures are logged,
    never raised.

    Returns:
        True if every requested step succeeded
    """
    try:
        key_manager.add_full_access_key(account_id, new_public_key)
    except KeyManagerError as e:
        logger.warning(f"Key handover for {account_id} failed: {e}")
        return False

    if old_public_key is None:
        return True

    try:
        key_manager.delete_key(account_id, old_public_key)
    except KeyManagerError as e:
        logger.warning(f"Old key revocation for {account_id} failed: {e}")
        return False
    return True
