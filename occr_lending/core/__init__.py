"""Lending core: identity gate, credit score, lending pool and order predicates."""
from .identity import IdentityVerifier
from .pool import LendingPool
from .predicates import OCCRPredicate, PricePredicate
from .score import OCCRScore

__all__ = ["IdentityVerifier", "LendingPool", "OCCRPredicate", "OCCRScore", "PricePredicate"]
