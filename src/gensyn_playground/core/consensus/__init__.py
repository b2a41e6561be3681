"""
GenSyn Playground proof verification.

**ProofVerifier**: sanity checks on a finished job (all steps done, one
finite metric per step) before its reward is credited.
"""

from gensyn_playground.core.consensus.verifier import ProofVerifier

__all__ = [
    "ProofVerifier",
]
