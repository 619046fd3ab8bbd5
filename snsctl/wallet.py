"""
Keys, Principals and Accounts
=============================
Key material and the address formats the ledgers and governance services use.

- Ed25519 and secp256k1 keys via the ecdsa library
- self-authenticating principals: sha224(DER public key) + 0x02
- textual principals: base32(crc32 + bytes), lowercase, dash every 5 chars
- ICRC-1 subaccounts and legacy 32-byte account identifiers
"""

import base64
import hashlib
import zlib
from dataclasses import dataclass
from typing import Optional

from ecdsa import Ed25519, SECP256k1, SigningKey
from ecdsa.der import UnexpectedDER
from ecdsa.keys import MalformedPointError

from .errors import IdentityError, InvalidArgument

SELF_AUTHENTICATING_TAG = b"\x02"
ANONYMOUS_BYTES = b"\x04"
MAX_PRINCIPAL_BYTES = 29
SUBACCOUNT_LEN = 32


@dataclass(frozen=True)
class Principal:
    """An identity or service id, stored as raw bytes."""
    raw: bytes

    def __post_init__(self):
        if len(self.raw) > MAX_PRINCIPAL_BYTES:
            raise InvalidArgument(f"Principal too long: {len(self.raw)} bytes")

    @classmethod
    def from_text(cls, text: str) -> "Principal":
        """Parse and checksum-verify a textual principal."""
        if not isinstance(text, str) or not text.strip():
            raise InvalidArgument("Principal must be a non-empty string")

        cleaned = text.strip().replace("-", "").upper()
        padding = "=" * (-len(cleaned) % 8)
        try:
            decoded = base64.b32decode(cleaned + padding)
        except ValueError:
            raise InvalidArgument(f"Malformed principal: {text!r}")

        if len(decoded) < 4:
            raise InvalidArgument(f"Malformed principal: {text!r}")

        checksum, raw = decoded[:4], decoded[4:]
        if zlib.crc32(raw).to_bytes(4, "big") != checksum:
            raise InvalidArgument(f"Principal checksum mismatch: {text!r}")

        principal = cls(raw)
        if str(principal) != text.strip().lower():
            raise InvalidArgument(f"Principal is not in canonical form: {text!r}")
        return principal

    @classmethod
    def self_authenticating(cls, der_public_key: bytes) -> "Principal":
        return cls(hashlib.sha224(der_public_key).digest() + SELF_AUTHENTICATING_TAG)

    @classmethod
    def anonymous(cls) -> "Principal":
        return cls(ANONYMOUS_BYTES)

    @property
    def is_anonymous(self) -> bool:
        return self.raw == ANONYMOUS_BYTES

    def __str__(self) -> str:
        checksum = zlib.crc32(self.raw).to_bytes(4, "big")
        encoded = base64.b32encode(checksum + self.raw).decode("ascii").lower().rstrip("=")
        return "-".join(encoded[i:i + 5] for i in range(0, len(encoded), 5))

    def __repr__(self) -> str:
        return f"Principal({self})"


class KeyPair:
    """
    Signing key plus its DER public key.

    Ed25519 keys come from 32-byte seeds (participants, Ed25519 dfx PEMs);
    secp256k1 keys from SEC1 PEMs (minting account, older dfx identities).
    """

    def __init__(self, signing_key: SigningKey):
        if signing_key.curve == Ed25519:
            self.scheme = "ed25519"
        elif signing_key.curve == SECP256k1:
            self.scheme = "secp256k1"
        else:
            raise IdentityError(f"Unsupported key curve: {signing_key.curve.name}")
        self.signing_key = signing_key
        self.public_key_der = signing_key.get_verifying_key().to_der()
        self.principal = Principal.self_authenticating(self.public_key_der)

    @classmethod
    def from_seed(cls, seed: bytes) -> "KeyPair":
        """Ed25519 key from a raw 32-byte seed."""
        if len(seed) != 32:
            raise IdentityError(f"Seed must be exactly 32 bytes, got {len(seed)}")
        return cls(SigningKey.from_string(seed, curve=Ed25519))

    @classmethod
    def from_pem(cls, pem: str) -> "KeyPair":
        """Load a PEM key; the curve comes from the key itself."""
        try:
            signing_key = SigningKey.from_pem(pem)
        except (ValueError, UnexpectedDER, MalformedPointError) as e:
            raise IdentityError(f"Could not parse PEM as secp256k1 or Ed25519: {e}")
        return cls(signing_key)

    def sign(self, message: bytes) -> bytes:
        if self.scheme == "ed25519":
            return self.signing_key.sign(message)
        return self.signing_key.sign_deterministic(message, hashfunc=hashlib.sha256)


def seed_for_index(index: int, salt: str = "sns-participant") -> bytes:
    """Deterministic 32-byte participant seed: sha256("<salt>-<index>")."""
    return hashlib.sha256(f"{salt}-{index}".encode()).digest()


def principal_subaccount(principal: Principal) -> bytes:
    """Subaccount owned by a principal: [len, principal bytes..., 0...]."""
    raw = principal.raw
    return bytes([len(raw)]) + raw + bytes(SUBACCOUNT_LEN - 1 - len(raw))


def neuron_subaccount(controller: Principal, memo: int) -> bytes:
    """Governance deposit subaccount for a (controller, memo) pair."""
    hasher = hashlib.sha256()
    hasher.update(b"\x0c")
    hasher.update(b"neuron-stake")
    hasher.update(controller.raw)
    hasher.update(memo.to_bytes(8, "big"))
    return hasher.digest()


def account_identifier(owner: Principal, subaccount: Optional[bytes] = None) -> bytes:
    """Legacy 32-byte account id: crc32 + sha224("\\x0Aaccount-id" + owner + subaccount)."""
    sub = subaccount if subaccount is not None else bytes(SUBACCOUNT_LEN)
    if len(sub) != SUBACCOUNT_LEN:
        raise InvalidArgument("Subaccount must be 32 bytes")
    digest = hashlib.sha224(b"\x0aaccount-id" + owner.raw + sub).digest()
    return zlib.crc32(digest).to_bytes(4, "big") + digest


def parse_subaccount(value: Optional[str]) -> Optional[bytes]:
    """Hex subaccount from user input; None passes through."""
    if value is None or value == "":
        return None
    try:
        sub = bytes.fromhex(value.strip().removeprefix("0x"))
    except ValueError:
        raise InvalidArgument(f"Subaccount is not hex: {value!r}")
    if len(sub) > SUBACCOUNT_LEN:
        raise InvalidArgument(f"Subaccount longer than 32 bytes: {value!r}")
    return sub.rjust(SUBACCOUNT_LEN, b"\x00")
