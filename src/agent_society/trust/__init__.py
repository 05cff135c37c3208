"""Agent Society trust - social graph derived credit limits."""

from .social_graph import SocialGraph, TrustCalculator, TrustConfig, TrustScore

__all__ = [
    "SocialGraph",
    "TrustCalculator",
    "TrustConfig",
    "TrustScore",
]
