"""
Cryptographic helpers for account credentials.

This module provides:
- Hashing (Keccak-256)
- Keypair generation on secp256k1 (for demo and test credentials)
- Credential parsing and fingerprinting used by the key manager

A credential is a 64-byte uncompressed public key (x || y), carried
around as a 0x-prefixed hex string.
"""

import secrets
from dataclasses import dataclass

from Crypto.Hash import keccak
from py_ecc.secp256k1 import secp256k1


# =============================================================================
# Constants
# =============================================================================

# secp256k1 curve order
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

PUBLIC_KEY_SIZE = 64


# =============================================================================
# Hashing
# =============================================================================


def keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum-style).

    Used for: credential fingerprints.
    """
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


# =============================================================================
# Keys
# =============================================================================


@dataclass
class KeyPair:
    """
    An ECDSA keypair on secp256k1.

    Attributes:
        private_key: 32-byte secret key
        public_key: 64-byte uncompressed public key (x || y coordinates)
    """
    private_key: bytes
    public_key: bytes

    @property
    def public_key_hex(self) -> str:
        """Public key as a 0x-prefixed credential string."""
        return bytes_to_hex(self.public_key)


def generate_keypair() -> KeyPair:
    """Generate a new random keypair."""
    private_key_int = secrets.randbelow(SECP256K1_ORDER - 1) + 1
    private_key = private_key_int.to_bytes(32, byteorder="big")

    x, y = secp256k1.privtopub(private_key)
    public_key = x.to_bytes(32, byteorder="big") + y.to_bytes(32, byteorder="big")

    return KeyPair(private_key=private_key, public_key=public_key)


def parse_public_key(credential: str) -> bytes:
    """
    Parse a hex credential into raw public key bytes.

    Raises:
        ValueError: If the credential is not valid hex or has the wrong size
    """
    try:
        raw = hex_to_bytes(credential)
    except ValueError:
        raise ValueError(f"Credential is not valid hex: {credential[:16]}...")
    if len(raw) != PUBLIC_KEY_SIZE:
        raise ValueError(f"Public key must be {PUBLIC_KEY_SIZE} bytes, got {len(raw)}")
    return raw


def key_fingerprint(public_key: bytes) -> str:
    """Short identifier of a public key: last 20 bytes of its keccak hash."""
    return bytes_to_hex(keccak256(public_key)[-20:])


# =============================================================================
# Encoding
# =============================================================================


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to hex string with 0x prefix."""
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)
