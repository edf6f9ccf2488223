"""Collateralized lending pool with identity gating and OCCR credit scores."""
from .core import IdentityVerifier, LendingPool, OCCRScore
from .engine import LendingEngine, deploy_engine

__all__ = [
    "IdentityVerifier",
    "LendingEngine",
    "LendingPool",
    "OCCRScore",
    "deploy_engine",
]
