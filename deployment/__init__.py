"""
Multichain Deployment
=====================

Deploys a fixed topology of contracts to many chains at once and wires them
together, applying changes directly or as a timelocked governance proposal.

Structure:
- address_book: Deployed contract records per chain
- state: Typed view of what exists on every chain
- steps, deployer, fanout: Idempotent per-chain deployment, run in parallel
- router, proposal: Direct or batched change application
- capabilities, configure: Registry capabilities, nodes, DONs and wiring
- changeset, main: Orchestration and the scheduled runner
"""

__version__ = "1.0.0"
