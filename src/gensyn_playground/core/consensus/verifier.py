"""
Proof Verifier

Playground "proofs" are cosmetic: nothing is signed and nobody else checks
them. Before a node pays itself for a job, the verifier still enforces the
basic sanity a real network would:

1. Every step of the job completed
2. One metric was recorded per step
3. Every metric is a finite number

Failing any of these means the job is treated as failed and pays nothing.
"""

import logging
import math
from typing import Any, Tuple

logger = logging.getLogger(__name__)


class ProofVerifier:
    """
    Verifies a finished job before its reward is credited.

    Usage:
        verifier = ProofVerifier()
        is_valid, reason = verifier.verify_job(running_job)
    """

    def verify_job(self, job: Any) -> Tuple[bool, str]:
        """
        Verify a RunningJob.

        Args:
            job: The RunningJob that claims completion

        Returns:
            (is_valid, reason) tuple
        """
        total = getattr(job, 'total_steps', 0)
        completed = getattr(job, 'completed_steps', 0)
        metrics = getattr(job, 'metrics', None) or []

        if total <= 0:
            return False, "Job has no steps"

        if completed < total:
            return False, f"Job incomplete: {completed}/{total} steps"

        if len(metrics) != total:
            return False, f"Metric count mismatch: {len(metrics)} metrics for {total} steps"

        for i, value in enumerate(metrics, start=1):
            if not math.isfinite(value):
                return False, f"Non-finite metric at step {i}: {value}"

        return True, "ok"
