"""
SNS Parameters
==============
Static parameters for the CreateServiceNervousSystem proposal.

Defaults describe a small test DAO ("AcmeDAO"). Any field can be
overridden from a JSON file (SNS_CONFIG_PATH):

    {"name": "MyDAO", "token_symbol": "MYD", "minimum_participants": 3}

The logo is read from SNS_LOGO_PATH if set, otherwise a built-in
1x1 PNG is used.
"""

import base64
import json
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import List, Optional

from .errors import ConfigError
from .wallet import Principal

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60
YEAR_SECONDS = 365 * DAY_SECONDS

DEFAULT_LOGO_BASE64 = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

PROPOSAL_TITLE = "Deploy {name} SNS"
PROPOSAL_SUMMARY = (
    "This proposal creates a new Service Nervous System (SNS) for {name} with configured "
    "governance parameters, token distribution, and swap mechanics."
)


@dataclass
class SnsParameters:
    """Everything the suite is created with. Amounts in e8s, durations in seconds."""

    # Basic information
    name: str = "AcmeDAO"
    description: str = (
        "AcmeDAO is a decentralized autonomous organization built on the Internet Computer "
        "Protocol. It enables community governance, token distribution, and collaborative "
        "decision-making through transparent voting mechanisms and smart contract automation."
    )
    url: str = "https://acmedao.io"

    # Ledger
    transaction_fee_e8s: int = 10_000
    token_symbol: str = "ACME"
    token_name: str = "Acme Token"

    # Governance
    neuron_maximum_dissolve_delay_bonus_bp: int = 10_000
    neuron_maximum_age_bonus_bp: int = 0
    neuron_minimum_stake_e8s: int = 10_000_000
    neuron_maximum_age_for_age_bonus_seconds: int = 4 * YEAR_SECONDS
    neuron_maximum_dissolve_delay_seconds: int = 8 * YEAR_SECONDS
    neuron_minimum_dissolve_delay_to_vote_seconds: int = 30 * DAY_SECONDS
    proposal_initial_voting_period_seconds: int = 4 * DAY_SECONDS
    proposal_wait_for_quiet_deadline_increase_seconds: int = DAY_SECONDS
    proposal_rejection_fee_e8s: int = 11_000_000
    initial_reward_rate_bp: int = 0
    final_reward_rate_bp: int = 0
    reward_rate_transition_duration_seconds: int = 0

    # Swap
    minimum_participants: int = 5
    neurons_fund_participation: bool = False
    minimum_direct_participation_icp_e8s: int = 5 * 100_000_000
    maximum_direct_participation_icp_e8s: int = 50 * 100_000_000
    minimum_participant_icp_e8s: int = 100_000_000
    maximum_participant_icp_e8s: int = 10 * 100_000_000
    swap_duration_seconds: int = 7 * DAY_SECONDS
    neuron_basket_count: int = 3
    neuron_basket_dissolve_delay_interval_seconds: int = 30 * DAY_SECONDS
    restricted_countries: List[str] = field(default_factory=lambda: ["AQ"])

    # Initial token distribution
    treasury_distribution_e8s: int = 1_000_000_000
    developer_neuron_stake_e8s: int = 100_000_000
    developer_neuron_dissolve_delay_seconds: int = 2 * YEAR_SECONDS
    developer_neuron_vesting_period_seconds: int = 4 * YEAR_SECONDS
    swap_distribution_e8s: int = 2_000_000_000

    def validate(self) -> None:
        """Raise ConfigError on parameters no suite could be created with."""
        if self.minimum_participants < 1:
            raise ConfigError("minimum_participants must be at least 1")
        if self.minimum_participant_icp_e8s <= 0:
            raise ConfigError("minimum_participant_icp_e8s must be positive")
        if self.minimum_participant_icp_e8s > self.maximum_participant_icp_e8s:
            raise ConfigError("minimum_participant_icp_e8s exceeds maximum_participant_icp_e8s")
        if self.minimum_direct_participation_icp_e8s > self.maximum_direct_participation_icp_e8s:
            raise ConfigError(
                "minimum_direct_participation_icp_e8s exceeds maximum_direct_participation_icp_e8s"
            )
        if self.neuron_basket_count < 1:
            raise ConfigError("neuron_basket_count must be at least 1")
        if self.swap_duration_seconds <= 0:
            raise ConfigError("swap_duration_seconds must be positive")

    def proposal_title(self) -> str:
        return PROPOSAL_TITLE.format(name=self.name)

    def proposal_summary(self) -> str:
        return PROPOSAL_SUMMARY.format(name=self.name)


def load_parameters(path: Optional[Path] = None) -> SnsParameters:
    """
    Default parameters, optionally overridden from a JSON object file.

    Unknown keys and values of the wrong type are ConfigErrors.
    """
    params = SnsParameters()
    if path is None:
        params.validate()
        return params

    try:
        overrides = json.loads(Path(path).read_text())
    except OSError as e:
        raise ConfigError(f"Failed to read SNS config {path}: {e}")
    except ValueError as e:
        raise ConfigError(f"SNS config {path} is not valid JSON: {e}")

    if not isinstance(overrides, dict):
        raise ConfigError(f"SNS config {path} must contain a JSON object")

    known = {f.name: f for f in fields(SnsParameters)}
    defaults = asdict(params)
    for key, value in overrides.items():
        if key not in known:
            raise ConfigError(f"Unknown SNS parameter: {key}")
        expected = type(defaults[key])
        # bool is an int subclass; keep them apart
        if isinstance(value, bool) != (expected is bool) or not isinstance(value, expected):
            raise ConfigError(
                f"SNS parameter {key} must be {expected.__name__}, got {type(value).__name__}"
            )
        setattr(params, key, value)

    params.validate()
    logger.info("Loaded SNS parameters from %s", path)
    return params


def load_logo(path: Optional[Path] = None) -> str:
    """PNG logo as a data URI; falls back to the built-in logo."""
    if path is None:
        return DEFAULT_LOGO_BASE64

    try:
        image = Path(path).read_bytes()
    except OSError as e:
        logger.warning("Failed to read logo %s: %s. Using default logo.", path, e)
        return DEFAULT_LOGO_BASE64

    return "data:image/png;base64," + base64.b64encode(image).decode("ascii")


def _tokens(e8s: int) -> dict:
    return {"e8s": e8s}


def _duration(seconds: int) -> dict:
    return {"seconds": seconds}


def _percentage(bp: int) -> dict:
    return {"basis_points": bp}


def build_proposal(params: SnsParameters, owner: Principal, logo: str) -> dict:
    """CreateServiceNervousSystem action with the owner as fallback controller and developer."""
    return {
        "name": params.name,
        "description": params.description,
        "url": params.url,
        "logo": {"base64_encoding": logo},
        "fallback_controller_principal_ids": [str(owner)],
        "dapp_canisters": [],
        "ledger_parameters": {
            "transaction_fee": _tokens(params.transaction_fee_e8s),
            "token_symbol": params.token_symbol,
            "token_logo": {"base64_encoding": logo},
            "token_name": params.token_name,
        },
        "governance_parameters": {
            "neuron_maximum_dissolve_delay_bonus": _percentage(
                params.neuron_maximum_dissolve_delay_bonus_bp
            ),
            "neuron_maximum_age_bonus": _percentage(params.neuron_maximum_age_bonus_bp),
            "neuron_minimum_stake": _tokens(params.neuron_minimum_stake_e8s),
            "neuron_maximum_age_for_age_bonus": _duration(
                params.neuron_maximum_age_for_age_bonus_seconds
            ),
            "neuron_maximum_dissolve_delay": _duration(
                params.neuron_maximum_dissolve_delay_seconds
            ),
            "neuron_minimum_dissolve_delay_to_vote": _duration(
                params.neuron_minimum_dissolve_delay_to_vote_seconds
            ),
            "proposal_initial_voting_period": _duration(
                params.proposal_initial_voting_period_seconds
            ),
            "proposal_wait_for_quiet_deadline_increase": _duration(
                params.proposal_wait_for_quiet_deadline_increase_seconds
            ),
            "proposal_rejection_fee": _tokens(params.proposal_rejection_fee_e8s),
            "voting_reward_parameters": {
                "initial_reward_rate": _percentage(params.initial_reward_rate_bp),
                "final_reward_rate": _percentage(params.final_reward_rate_bp),
                "reward_rate_transition_duration": _duration(
                    params.reward_rate_transition_duration_seconds
                ),
            },
        },
        "swap_parameters": {
            "minimum_participants": params.minimum_participants,
            "neurons_fund_participation": params.neurons_fund_participation,
            "minimum_direct_participation_icp": _tokens(
                params.minimum_direct_participation_icp_e8s
            ),
            "maximum_direct_participation_icp": _tokens(
                params.maximum_direct_participation_icp_e8s
            ),
            "minimum_participant_icp": _tokens(params.minimum_participant_icp_e8s),
            "maximum_participant_icp": _tokens(params.maximum_participant_icp_e8s),
            "confirmation_text": None,
            "restricted_countries": {"iso_codes": list(params.restricted_countries)},
            "start_time": None,
            "duration": _duration(params.swap_duration_seconds),
            "neuron_basket_construction_parameters": {
                "count": params.neuron_basket_count,
                "dissolve_delay_interval": _duration(
                    params.neuron_basket_dissolve_delay_interval_seconds
                ),
            },
        },
        "initial_token_distribution": {
            "treasury_distribution": {"total": _tokens(params.treasury_distribution_e8s)},
            "developer_distribution": {
                "developer_neurons": [
                    {
                        "controller": str(owner),
                        "dissolve_delay": _duration(
                            params.developer_neuron_dissolve_delay_seconds
                        ),
                        "memo": 0,
                        "vesting_period": _duration(
                            params.developer_neuron_vesting_period_seconds
                        ),
                        "stake": _tokens(params.developer_neuron_stake_e8s),
                    }
                ],
            },
            "swap_distribution": {"total": _tokens(params.swap_distribution_e8s)},
        },
    }
