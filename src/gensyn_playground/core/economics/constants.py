"""
$SY Token Economics - Centralized Configuration

This module defines ALL payout constants for the playground node.
Values should be referenced from here, not hardcoded elsewhere.

=============================================================================
DESIGN PRINCIPLES
=============================================================================

1. PROPORTIONAL PAYOUT: A job pays its base reward scaled by the device's
   relative speed. Faster hardware earns more per job.

2. NO BUDGET: There is no cap. A payout can exceed every previous one.

3. DISPLAY PRECISION: Rewards are rounded to cents ($SY has 2 display
   decimals) at the moment they are paid, so the running total is always
   the sum of what the user saw.

=============================================================================
"""

from typing import Any

# =============================================================================
# CURRENCY
# =============================================================================

CURRENCY_SYMBOL = "$SY"             # Fictitious reward token
REWARD_DECIMALS = 2                 # Display + payout precision

# =============================================================================
# SHARING
# =============================================================================

PLAYGROUND_NAME = "GenSyn Playground"
SHARE_URL = "https://gensynplayground.vercel.app"

# =============================================================================
# CLIENT CUES
# =============================================================================
# Tone frequencies (Hz) a client plays when the node emits a cue event.

JOB_STARTED_CUE_HZ = 600
PROOF_VERIFIED_CUE_HZ = 1000

# How long a client keeps the confetti up after a verified proof
CELEBRATE_SECONDS = 4.0


def compute_reward(job: Any, device: Any) -> float:
    """
    Compute the payout for a completed job on a device.

    reward = base_reward * relative_speed, rounded to REWARD_DECIMALS.

    Args:
        job: JobTemplate (anything with `base_reward`)
        device: Device (anything with `relative_speed`)

    Returns:
        Payout in $SY

    Examples:
        >>> from gensyn_playground.core.jobs.catalog import Device, JobTemplate
        >>> compute_reward(JobTemplate("ResNet", 1.2), Device("A100", 1.0))
        1.2
        >>> compute_reward(JobTemplate("Llama", 2.8), Device("H100", 1.8))
        5.04
    """
    return round(job.base_reward * device.relative_speed, REWARD_DECIMALS)


def format_earnings(amount: float) -> str:
    """Format an amount the way the dashboard shows it: '3.46'."""
    return f"{amount:.{REWARD_DECIMALS}f}"


def share_message(earnings: float, url: str = SHARE_URL) -> str:
    """
    Build the text a user copies to brag about their earnings.

    Examples:
        >>> share_message(3.456)
        'I earned 3.46 $SY on GenSyn Playground! https://gensynplayground.vercel.app'
    """
    return f"I earned {format_earnings(earnings)} {CURRENCY_SYMBOL} on {PLAYGROUND_NAME}! {url}"
