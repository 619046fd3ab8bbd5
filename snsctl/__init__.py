"""
snsctl
======
Deploys a Service Nervous System on a local Internet Computer replica,
runs its decentralization swap, and manages neurons on both the base
(NNS) and the deployed suite (SNS) governance.
"""

__version__ = "0.1.0"
