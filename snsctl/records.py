"""
Deployment Record
=================
The JSON file a successful deployment leaves behind.

    {
      "icp_neuron_id": 123,
      "proposal_id": 1,
      "owner_principal": "...",
      "deployed_sns": {"governance_canister_id": "...", "ledger_canister_id": "...",
                       "swap_canister_id": "...", "root_canister_id": "...",
                       "index_canister_id": "..."},
      "participants": [{"principal": "...", "seed_file": "..."}]
    }

It is written exactly once, at the end of a deployment, through a
temporary file and a rename, so readers see either nothing or the
whole record.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

SERVICE_KEYS = (
    "governance_canister_id",
    "ledger_canister_id",
    "swap_canister_id",
    "root_canister_id",
    "index_canister_id",
)


@dataclass
class SuiteServices:
    """Service ids of one deployed suite."""
    governance: str
    ledger: str
    swap: str
    root: str
    index: str

    @classmethod
    def from_dict(cls, d: dict) -> "SuiteServices":
        missing = [key for key in SERVICE_KEYS if not d.get(key)]
        if missing:
            raise ConfigError(f"Deployed suite is missing {', '.join(missing)}")
        return cls(
            governance=d["governance_canister_id"],
            ledger=d["ledger_canister_id"],
            swap=d["swap_canister_id"],
            root=d["root_canister_id"],
            index=d["index_canister_id"],
        )

    def to_dict(self) -> dict:
        return {
            "governance_canister_id": self.governance,
            "ledger_canister_id": self.ledger,
            "swap_canister_id": self.swap,
            "root_canister_id": self.root,
            "index_canister_id": self.index,
        }


@dataclass
class ParticipantRecord:
    principal: str
    seed_file: str


@dataclass
class DeploymentRecord:
    """Outcome of one deployment."""
    funding_neuron_id: int
    proposal_id: int
    owner_principal: str
    deployed_sns: SuiteServices
    participants: List[ParticipantRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "icp_neuron_id": self.funding_neuron_id,
            "proposal_id": self.proposal_id,
            "owner_principal": self.owner_principal,
            "deployed_sns": self.deployed_sns.to_dict(),
            "participants": [
                {"principal": p.principal, "seed_file": p.seed_file} for p in self.participants
            ],
        }

    @classmethod
    def from_dict(cls, d: dict) -> "DeploymentRecord":
        try:
            return cls(
                funding_neuron_id=int(d["icp_neuron_id"]),
                proposal_id=int(d["proposal_id"]),
                owner_principal=d["owner_principal"],
                deployed_sns=SuiteServices.from_dict(d["deployed_sns"]),
                participants=[
                    ParticipantRecord(p["principal"], p["seed_file"])
                    for p in d.get("participants", [])
                ],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Deployment record is malformed: {e}")

    def participant_principals(self) -> List[str]:
        return [p.principal for p in self.participants]


def save_record(record: DeploymentRecord, path: Path) -> None:
    """Write the record atomically (temp file in the same directory, then rename)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".record-", suffix=".json")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(record.to_dict(), f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    logger.info("Deployment record written to %s", path)


def load_record(path: Path) -> DeploymentRecord:
    """Read the record. Missing or unreadable records are ConfigErrors."""
    if not path.is_file():
        raise ConfigError(f"No deployment record at {path}. Run `snsctl deploy` first.")
    try:
        data = json.loads(path.read_text())
    except OSError as e:
        raise ConfigError(f"Failed to read deployment record {path}: {e}")
    except ValueError as e:
        raise ConfigError(f"Deployment record {path} is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Deployment record {path} must contain a JSON object")
    return DeploymentRecord.from_dict(data)


def try_load_record(path: Path) -> Optional[DeploymentRecord]:
    """The record, or None if there is none yet. A corrupt record still raises."""
    if not path.exists():
        return None
    return load_record(path)
