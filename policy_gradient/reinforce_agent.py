"""
REINFORCE Agent

Implements the Monte Carlo policy gradient from:
Williams (1992) "Simple Statistical Gradient-Following Algorithms for
Connectionist Reinforcement Learning"

The loss is the negative sum, over the steps of completed episodes, of action
log-probabilities weighted by the return from that step onward, averaged over
the number of completed episodes:

    L(θ) = -Σ_t log π_θ(a_t|s_t) · G_t · mask_t / #episodes  -  c · H(π_θ)

REINFORCE needs full-episode returns, so entries of an episode still running
when the rollout stopped are masked out, and a trajectory without a single
completed episode is rejected.
"""

import logging
from typing import Optional

import torch
from torch.distributions import Distribution

from policy_gradient.agent import PolicyGradientAgent
from policy_gradient.normalization import StreamingNormalizer
from policy_gradient.trajectory import Trajectory, complete_episode_mask, episode_count
from policy_gradient.values import discounted_returns

logger = logging.getLogger(__name__)


def reinforce_loss(
    action_distribution: Distribution,
    actions: torch.Tensor,
    returns: torch.Tensor,
    mask: torch.Tensor,
    num_episodes: torch.Tensor,
    entropy_weight: float = 0.0
) -> torch.Tensor:
    """
    REINFORCE loss for one trajectory

    Args:
        action_distribution: π_θ(·|s_t) evaluated on the trajectory, batch shape (T, B)
        actions: Actions taken, shape (T, B)
        returns: (Normalized) discounted returns, shape (T, B)
        mask: 1 for entries of completed episodes, shape (T, B)
        num_episodes: Number of completed episodes
        entropy_weight: Entropy regularization weight (0 disables the term)
    """
    log_probs = action_distribution.log_prob(actions)
    weighted_returns = log_probs * returns
    loss = -(weighted_returns * mask).sum() / num_episodes
    if entropy_weight > 0.0:
        loss = loss - entropy_weight * action_distribution.entropy().mean()
    return loss


class ReinforceAgent(PolicyGradientAgent):
    """
    REINFORCE agent with optional streaming return normalization

    Attributes:
        discount_factor: γ used for the discounted returns
        entropy_regularization_weight: Weight of the entropy bonus
        returns_normalizer: Streaming normalizer over (time, batch), or None
    """

    def __init__(
        self,
        environment,
        network,
        optimizer,
        discount_factor: float,
        normalize_returns: bool = True,
        entropy_regularization_weight: float = 0.0
    ):
        """
        Args:
            environment: Environment the agent acts in (provides action_space)
            network: PolicyNetwork-like module returning an action distribution
            optimizer: tools.Optimizer over the network parameters
            discount_factor: Reward discount factor γ
            normalize_returns: Whether to normalize returns with running statistics
            entropy_regularization_weight: Entropy bonus weight (0 disables it)
        """
        super().__init__(environment, network, optimizer)
        self.discount_factor = discount_factor
        self.entropy_regularization_weight = entropy_regularization_weight
        self.returns_normalizer: Optional[StreamingNormalizer] = (
            StreamingNormalizer(along_axes=(0, 1)) if normalize_returns else None
        )

    def action_distribution(self, step):
        return self.network(step.observation)

    def update(self, trajectory: Trajectory) -> float:
        """
        Perform one REINFORCE update

        Raises:
            RuntimeError: If the trajectory holds no completed episode. Nothing
                          is mutated in that case.
        """
        num_episodes = episode_count(trajectory.step_kind)
        if num_episodes.item() == 0:
            raise RuntimeError("REINFORCE requires at least one completed episode.")

        returns = discounted_returns(
            self.discount_factor,
            trajectory.step_kind,
            trajectory.reward
        )
        if self.returns_normalizer is not None:
            self.returns_normalizer.update(returns)
            returns = self.returns_normalizer.normalize(returns)

        mask = complete_episode_mask(trajectory.step_kind).to(returns.dtype)

        self.network.state = trajectory.state
        action_distribution = self.network(trajectory.observation)
        loss = reinforce_loss(
            action_distribution,
            trajectory.action,
            returns,
            mask,
            num_episodes.to(returns.dtype),
            self.entropy_regularization_weight
        )
        self.optimizer(loss)

        logger.debug("REINFORCE update: loss=%.6f episodes=%d", loss.item(), num_episodes.item())
        return loss.item()
