"""
Streaming normalization of returns and advantages.

Running mean/variance over a configurable set of axes, merged batch by batch
with the parallel form of Welford's algorithm. Statistics accumulate for the
lifetime of the owning agent; there is no decay and no reset.
"""

import logging
from typing import Sequence

import torch

logger = logging.getLogger(__name__)


class StreamingNormalizer:
    """
    Running mean and (population) variance along fixed axes.

    Agents call update() with a batch and then normalize() on that same batch,
    so each batch's own statistics take part in its normalization.

    Not thread-safe: a normalizer belongs to exactly one agent and is only
    touched during that agent's update call.

    Args:
        along_axes: Axes reduced by the statistics. The default (0, 1) reduces
            over time and batch, leaving one statistic per feature.
        epsilon: Added to the standard deviation in normalize()
    """

    def __init__(self, along_axes: Sequence[int] = (0, 1), epsilon: float = 1e-8):
        self.along_axes = tuple(along_axes)
        self.epsilon = epsilon
        self.count = 0
        self.mean = None
        self.variance = None

    @torch.no_grad()
    def update(self, batch: torch.Tensor) -> None:
        """Fold a new batch into the running statistics."""
        batch = batch.detach()
        axes = tuple(a for a in self.along_axes if a < batch.dim())
        batch_count = 1
        for axis in axes:
            batch_count *= batch.shape[axis]
        if batch_count == 0:
            return

        batch_mean = batch.mean(dim=axes, keepdim=True) if axes else batch.clone()
        if axes:
            batch_var = batch.var(dim=axes, unbiased=False, keepdim=True)
        else:
            batch_var = torch.zeros_like(batch)

        if self.mean is None:
            self.mean = batch_mean
            self.variance = batch_var
            self.count = batch_count
            return

        total_count = self.count + batch_count
        delta = batch_mean - self.mean
        m2 = (
            self.variance * self.count
            + batch_var * batch_count
            + delta ** 2 * self.count * batch_count / total_count
        )
        self.mean = self.mean + delta * batch_count / total_count
        self.variance = m2 / total_count
        self.count = total_count
        logger.debug("Normalizer updated: count=%d", self.count)

    def normalize(self, x: torch.Tensor) -> torch.Tensor:
        """(x - mean) / (sqrt(variance) + epsilon) using the running statistics."""
        if self.mean is None:
            return x
        mean = self.mean.to(x.device)
        std = torch.sqrt(self.variance.to(x.device))
        return (x - mean) / (std + self.epsilon)
