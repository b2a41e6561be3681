from gensyn_playground.core.economics.constants import (
    CURRENCY_SYMBOL,
    SHARE_URL,
    compute_reward,
    format_earnings,
    share_message,
)

__all__ = [
    "CURRENCY_SYMBOL",
    "SHARE_URL",
    "compute_reward",
    "format_earnings",
    "share_message",
]
