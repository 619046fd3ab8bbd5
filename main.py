#!/usr/bin/env python3
"""
snsctl - Main Entry Point
=========================

Deploys an SNS on a local replica and manages its neurons. Every call
goes through a JSON gateway in front of the replica (see snsctl/rpc.py);
the test suite runs against an in-memory replica instead.

1. Creates a funding neuron and submits the SNS proposal
2. Funds five test participants and runs the swap to completion
3. Writes generated/sns_deployment_data.json

Setup:
    pip install -e .
    dfx start --clean --background   # with the NNS installed
    # start a JSON gateway for the replica; point DFX_REPLICA_URL at it
    python main.py deploy

Commands:
    python main.py deploy                      # Deploy the SNS
    python main.py list-neurons base|suite     # List neurons
    python main.py create-neuron base|suite    # Stake a new neuron
    python main.py mint base|suite             # Mint tokens
    python main.py check-deployed              # Exit 0 if deployed

Environment Variables:
    DFX_NETWORK           - dfx network name (default: local)
    DFX_IDENTITY          - dfx identity used as owner (default: default)
    OWNER_IDENTITY_PEM    - explicit owner PEM path
    DFX_REPLICA_URL       - gateway URL (default: replica address from dfx networks.json)
    SNS_CONFIG_PATH       - JSON overrides for SNS parameters
    SNSCTL_OUTPUT_DIR     - record and seed directory (default: generated)
"""

from snsctl.cli import main

if __name__ == "__main__":
    main()
