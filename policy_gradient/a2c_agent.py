"""
Advantage Actor-Critic (A2C) Agent

Paper Reference: Mnih et al. (2016) "Asynchronous Methods for Deep
Reinforcement Learning" (synchronous variant)

The network is evaluated once on the whole trajectory window of length T+1.
The last index is used only for its value estimate, which bootstraps the
advantage computation; its action distribution, action and reward are unused.

Loss:
    L = -mean(log π_θ(a_t|s_t) · Â_t)
        + c_v · mean((V_ϕ(s_t) - G_t)^2)
        - c_e · mean(H(π_θ(·|s_t)))
"""

import logging
from typing import Optional

from policy_gradient.agent import PolicyGradientAgent
from policy_gradient.normalization import StreamingNormalizer
from policy_gradient.trajectory import Trajectory
from policy_gradient.values import AdvantageFunction, GeneralizedAdvantageEstimation

logger = logging.getLogger(__name__)


class A2CAgent(PolicyGradientAgent):
    """
    Synchronous advantage actor-critic agent

    Attributes:
        advantage_function: Advantage estimator (GAE by default)
        value_estimation_loss_weight: Weight c_v of the value loss
        entropy_regularization_weight: Weight c_e of the entropy bonus
        advantages_normalizer: Streaming normalizer over (time, batch), or None
    """

    def __init__(
        self,
        environment,
        network,
        optimizer,
        advantage_function: Optional[AdvantageFunction] = None,
        normalize_advantages: bool = True,
        value_estimation_loss_weight: float = 0.2,
        entropy_regularization_weight: float = 0.0
    ):
        super().__init__(environment, network, optimizer)
        if advantage_function is None:
            advantage_function = GeneralizedAdvantageEstimation(discount_factor=0.9)
        self.advantage_function = advantage_function
        self.value_estimation_loss_weight = value_estimation_loss_weight
        self.entropy_regularization_weight = entropy_regularization_weight
        self.advantages_normalizer: Optional[StreamingNormalizer] = (
            StreamingNormalizer(along_axes=(0, 1)) if normalize_advantages else None
        )

    def action_distribution(self, step):
        return self.network(step.observation).action_distribution

    def update(self, trajectory: Trajectory) -> float:
        """
        Perform one A2C update

        Raises:
            ValueError: If the trajectory has fewer than two entries. Nothing
                        is mutated in that case.
        """
        if len(trajectory) < 2:
            raise ValueError(
                "A2C requires at least two trajectory entries (the last one only bootstraps)."
            )
        self.network.state = trajectory.state
        output = self.network(trajectory.observation)

        # The last step only provides the bootstrap value.
        sequence_length = output.value.shape[0] - 1
        values = output.value[:sequence_length]
        final_value = output.value[sequence_length]

        estimate = self.advantage_function(
            step_kinds=trajectory.step_kind[:sequence_length],
            rewards=trajectory.reward[:sequence_length],
            values=values.detach(),
            final_value=final_value.detach()
        )
        advantages = estimate.advantages
        if self.advantages_normalizer is not None:
            self.advantages_normalizer.update(advantages)
            advantages = self.advantages_normalizer.normalize(advantages)
        returns = estimate.discounted_returns

        action_distribution = output.action_distribution
        log_probs = action_distribution.log_prob(trajectory.action)[:sequence_length]

        policy_loss = -(log_probs * advantages).mean()
        value_loss = self.value_estimation_loss_weight * ((values - returns) ** 2).mean()
        entropy_loss = policy_loss.new_zeros(())
        if self.entropy_regularization_weight > 0.0:
            entropy = action_distribution.entropy()[:sequence_length]
            entropy_loss = -self.entropy_regularization_weight * entropy.mean()

        loss = policy_loss + value_loss + entropy_loss
        self.optimizer(loss)

        logger.debug(
            "A2C update: policy=%.6f value=%.6f entropy=%.6f",
            policy_loss.item(), value_loss.item(), entropy_loss.item()
        )
        return loss.item()
