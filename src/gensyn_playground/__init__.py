"""GenSyn Playground - a simulated decentralized compute node."""

from gensyn_playground.version import __version__

__all__ = ["__version__"]
