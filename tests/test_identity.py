"""
Unit Tests for Identity Manager
===============================
Tests participant seed persistence, owner loading and principal lookup.

Run: python -m pytest tests/test_identity.py -v
"""

import pytest

from snsctl.errors import IdentityError, InvalidArgument
from snsctl.identity import IdentityRole, load_seed
from snsctl.records import DeploymentRecord, ParticipantRecord, SuiteServices
from snsctl.wallet import KeyPair, Principal, seed_for_index


def _record(participants):
    services = SuiteServices("g", "l", "s", "r", "i")
    return DeploymentRecord(1001, 1, "owner", services, participants)


# ============================================================
# Participant Tests
# ============================================================

class TestParticipants:
    """Deterministic participant identities."""

    def test_derive_persists_seed(self, identities):
        """First derivation writes the seed file."""
        identity = identities.derive_participant(1)
        path = identities.seed_path(1)
        assert path.is_file()
        assert path.read_text() == seed_for_index(1).hex()
        assert identity.role == IdentityRole.PARTICIPANT
        assert identity.seed_file == path

    def test_derive_is_stable(self, config, identities):
        """A fresh manager reproduces the same principal."""
        from snsctl.identity import IdentityManager

        first = identities.derive_participant(2).principal
        second = IdentityManager(config).derive_participant(2).principal
        assert first == second

    def test_existing_seed_file_wins(self, identities):
        """A seed on disk is used even if it differs from the derived one."""
        custom = bytes(range(32))
        path = identities.seed_path(1)
        path.parent.mkdir(parents=True)
        path.write_text(custom.hex())

        identity = identities.derive_participant(1)
        assert identity.principal == KeyPair.from_seed(custom).principal
        assert path.read_text() == custom.hex()

    def test_corrupt_seed_is_fatal(self, identities):
        """An unreadable seed is never replaced."""
        path = identities.seed_path(1)
        path.parent.mkdir(parents=True)
        path.write_text("abcd")

        with pytest.raises(IdentityError):
            identities.derive_participant(1)
        assert path.read_text() == "abcd"

    def test_non_hex_seed(self, tmp_path):
        path = tmp_path / "bad.seed"
        path.write_text("zz" * 32)
        with pytest.raises(IdentityError):
            load_seed(path)

    def test_index_must_be_positive(self, identities):
        with pytest.raises(InvalidArgument):
            identities.derive_participant(0)


# ============================================================
# Owner and Minting Tests
# ============================================================

class TestOwner:
    """External and embedded keys."""

    def test_owner_from_pem(self, identities, owner_pem):
        owner = identities.owner_identity()
        assert owner.role == IdentityRole.OWNER
        assert owner.key.scheme == "secp256k1"
        assert identities.owner_pem_path() == owner_pem

    def test_missing_owner_pem(self, identities, owner_pem):
        owner_pem.unlink()
        with pytest.raises(IdentityError) as exc:
            identities.owner_identity()
        assert "Identity not found" in str(exc.value)

    def test_minting_identity(self, identities):
        minting = identities.minting_identity()
        assert minting.role == IdentityRole.MINTING
        assert minting.principal != identities.owner_identity().principal

    def test_anonymous_identity_has_no_key(self):
        from snsctl.identity import Identity

        anonymous = Identity.anonymous()
        assert anonymous.key is None
        assert anonymous.principal.is_anonymous


# ============================================================
# Lookup Tests
# ============================================================

class TestIdentityFor:
    """Resolving a principal to something that can sign for it."""

    def test_participant_from_record(self, identities):
        participant = identities.derive_participant(3)
        record = _record([
            ParticipantRecord(str(participant.principal), str(participant.seed_file)),
        ])

        resolved = identities.identity_for(participant.principal, record)
        assert resolved.principal == participant.principal
        assert resolved.role == IdentityRole.PARTICIPANT

    def test_owner_without_record(self, identities):
        owner = identities.owner_identity()
        assert identities.identity_for(owner.principal) is owner

    def test_unknown_principal(self, identities):
        stranger = KeyPair.from_seed(bytes(32)).principal
        with pytest.raises(InvalidArgument):
            identities.identity_for(stranger, _record([]))

    def test_seed_file_for_wrong_principal(self, identities):
        """A record entry whose seed does not match its principal is rejected."""
        one = identities.derive_participant(1)
        two = identities.derive_participant(2)
        record = _record([ParticipantRecord(str(two.principal), str(one.seed_file))])

        with pytest.raises(IdentityError):
            identities.identity_for(Principal.from_text(str(two.principal)), record)
