"""Live order book distribution."""

from depthbook.distribution.channel import DistributionChannel, InProcessChannel, Subscription

__all__ = ["DistributionChannel", "InProcessChannel", "Subscription"]
