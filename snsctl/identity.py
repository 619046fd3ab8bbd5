"""
Identity Manager
================
Signing identities used by snsctl.

- owner: the caller's dfx identity (external PEM file)
- minting: the local base ledger's minting account (embedded key)
- participants: N deterministic Ed25519 identities whose seeds are
  persisted under <output_dir>/participants and reused forever

A participant seed file, once written, always wins over re-derivation.
A seed file that cannot be read is fatal: regenerating it would change
the principal and orphan whatever that principal owns on chain.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from .config import Config
from .errors import IdentityError, InvalidArgument
from .wallet import KeyPair, Principal, seed_for_index

logger = logging.getLogger(__name__)


class IdentityRole(Enum):
    OWNER = "owner"
    MINTING = "minting"
    PARTICIPANT = "participant"
    ANONYMOUS = "anonymous"


@dataclass
class Identity:
    """A principal and (unless anonymous) the key that signs for it."""
    principal: Principal
    key: Optional[KeyPair]
    role: IdentityRole
    seed_file: Optional[Path] = None

    @classmethod
    def anonymous(cls) -> "Identity":
        return cls(Principal.anonymous(), None, IdentityRole.ANONYMOUS)


def save_seed(seed: bytes, path: Path) -> None:
    """Write a seed as 64 hex characters."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(seed.hex())


def load_seed(path: Path) -> bytes:
    """Read a hex seed file. Anything but exactly 32 bytes is an IdentityError."""
    try:
        content = path.read_text().strip()
    except (OSError, UnicodeDecodeError) as e:
        raise IdentityError(f"Failed to read seed file {path}: {e}")

    try:
        seed = bytes.fromhex(content)
    except ValueError:
        raise IdentityError(f"Seed file {path} is not valid hex")

    if len(seed) != 32:
        raise IdentityError(
            f"Seed file {path} must contain exactly 32 bytes (64 hex characters), got {len(seed)}"
        )
    return seed


class IdentityManager:
    """Loads and derives identities for one Config."""

    def __init__(self, config: Config):
        self.config = config
        self._owner: Optional[Identity] = None
        self._participants: Dict[int, Identity] = {}

    def seed_path(self, index: int) -> Path:
        return self.config.participants_dir / f"participant_{index}.seed"

    def derive_participant(self, index: int) -> Identity:
        """
        Participant identity for a 1-based index.

        Loads the persisted seed if present, otherwise derives and persists it.
        """
        if index < 1:
            raise InvalidArgument(f"Participant index must be >= 1, got {index}")

        if index in self._participants:
            return self._participants[index]

        path = self.seed_path(index)
        if path.exists():
            seed = load_seed(path)
            logger.debug("Loaded participant %d seed from %s", index, path)
        else:
            seed = seed_for_index(index)
            save_seed(seed, path)
            logger.info("Saved participant %d seed to %s", index, path)

        key = KeyPair.from_seed(seed)
        identity = Identity(key.principal, key, IdentityRole.PARTICIPANT, seed_file=path)
        self._participants[index] = identity
        return identity

    def participant_from_seed_file(self, path: Path) -> Identity:
        """Identity from an existing seed file (never derives)."""
        key = KeyPair.from_seed(load_seed(path))
        return Identity(key.principal, key, IdentityRole.PARTICIPANT, seed_file=path)

    def minting_identity(self) -> Identity:
        key = KeyPair.from_pem(self.config.minting_pem)
        return Identity(key.principal, key, IdentityRole.MINTING)

    def owner_pem_path(self) -> Path:
        if self.config.owner_pem_path is not None:
            return self.config.owner_pem_path
        return (
            self.config.dfx_config_dir / "identity" / self.config.identity_name / "identity.pem"
        )

    def owner_identity(self) -> Identity:
        """The caller's dfx identity (secp256k1 or Ed25519 PEM)."""
        if self._owner is not None:
            return self._owner

        path = self.owner_pem_path()
        if not path.is_file():
            raise IdentityError(f"Identity not found at: {path}")
        try:
            pem = path.read_text()
        except OSError as e:
            raise IdentityError(f"Failed to read identity file {path}: {e}")

        key = KeyPair.from_pem(pem)
        self._owner = Identity(key.principal, key, IdentityRole.OWNER)
        return self._owner

    def identity_for(self, principal: Principal, record=None) -> Identity:
        """
        Signing identity for a principal the deployment knows about.

        The owner is always known; participants are looked up in the
        deployment record and loaded from their seed files.
        """
        if record is not None:
            for participant in record.participants:
                if participant.principal == str(principal):
                    identity = self.participant_from_seed_file(Path(participant.seed_file))
                    if identity.principal != principal:
                        raise IdentityError(
                            f"Seed file {participant.seed_file} does not belong to {principal}"
                        )
                    return identity

        owner = self.owner_identity()
        if principal == owner.principal:
            return owner

        raise InvalidArgument(
            f"No signing identity available for {principal}. "
            "Use the owner or a participant from the deployment record."
        )
