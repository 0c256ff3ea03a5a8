"""
PPO Agent - Core Algorithm Implementation

This module implements the Proximal Policy Optimization algorithm from:
Schulman et al. (2017) "Proximal Policy Optimization Algorithms"
https://arxiv.org/abs/1707.06347

Algorithm Overview (Schulman et al. 2017, Algorithm 1):
1. Evaluate π_{θ_old} and V once on the collected trajectory
2. Compute advantages Â_t (GAE by default)
3. For K epochs, each replaying the trajectory from its initial recurrent state:
    a. Re-evaluate π_θ and V
    b. Minimize the assembled loss with one optimizer step
4. Optionally adapt the KL penalty coefficient β

Loss terms (each one optional except the surrogate and value terms):
- Clipped surrogate:  -E[min(r_t Â_t, clip(r_t, 1-ε, 1+ε) Â_t)]
  (plain surrogate -E[r_t Â_t] when clipping is disabled)
- KL penalty:         c_cut · max(0, KL - f·d_targ)^2 + β · KL
- Entropy bonus:      -c_e · E[H(π_θ)]
- Value loss:         c_v · E[(V_ϕ(s_t) - V_t^{targ})^2]

Naming Conventions (from paper):
- r_t(θ): importance ratio π_θ(a_t|s_t) / π_{θ_old}(a_t|s_t)
- ε: Clipping parameter (typically 0.2)
- β: Adaptive KL penalty coefficient
- d_targ: KL target
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Optional

import torch
from torch.distributions import kl_divergence

from policy_gradient.agent import PolicyGradientAgent
from policy_gradient.normalization import StreamingNormalizer
from policy_gradient.trajectory import Trajectory
from policy_gradient.values import (
    AdvantageEstimate,
    AdvantageFunction,
    GeneralizedAdvantageEstimation,
)

logger = logging.getLogger(__name__)

MIN_ADAPTIVE_KL_BETA = 1e-16


@dataclass(frozen=True)
class PPOClip:
    """Importance ratio clipping with range [1 - epsilon, 1 + epsilon]"""
    epsilon: float = 0.2


@dataclass
class PPOPenalty:
    """
    KL penalty configuration and adaptive β state

    Attributes:
        kl_cutoff_factor: KL values above kl_cutoff_factor * adaptive_kl_target
                          are penalized quadratically
        kl_cutoff_coefficient: Weight of the quadratic cutoff penalty
        adaptive_kl_target: KL target d_targ
        adaptive_kl_tolerance_factor: β changes only when KL leaves
                                      [d_targ / tol, d_targ * tol]
        adaptive_kl_beta_scaling_factor: Factor β is divided or multiplied by.
                                         Must be positive.
        adaptive_kl_beta: Current β, or None to disable the adaptive term
    """

    kl_cutoff_factor: float = 0.2
    kl_cutoff_coefficient: float = 1000.0
    adaptive_kl_target: float = 0.01
    adaptive_kl_tolerance_factor: float = 1.5
    adaptive_kl_beta_scaling_factor: float = 2.0
    adaptive_kl_beta: Optional[float] = 1.0

    def __post_init__(self):
        if self.adaptive_kl_beta_scaling_factor <= 0:
            raise ValueError("The beta scaling factor must be positive.")

    def loss(self, kl_mean: torch.Tensor) -> torch.Tensor:
        """Penalty term for the mean KL divergence between old and new policies"""
        cutoff = torch.clamp(
            kl_mean - self.kl_cutoff_factor * self.adaptive_kl_target, min=0.0
        )
        loss = self.kl_cutoff_coefficient * cutoff ** 2
        if self.adaptive_kl_beta is not None:
            loss = loss + self.adaptive_kl_beta * kl_mean
        return loss

    def adapt_beta(self, kl_mean: float) -> None:
        """
        Adapt β to the KL divergence realized by the last update

        Shrinks β when KL < d_targ / tol (floored at a small positive value),
        grows it when KL > d_targ * tol and leaves it unchanged otherwise.
        """
        beta = self.adaptive_kl_beta
        if beta is None:
            return
        target = self.adaptive_kl_target
        tolerance = self.adaptive_kl_tolerance_factor
        scaling = self.adaptive_kl_beta_scaling_factor
        if kl_mean < target / tolerance:
            self.adaptive_kl_beta = max(beta / scaling, MIN_ADAPTIVE_KL_BETA)
        elif kl_mean > target * tolerance:
            self.adaptive_kl_beta = beta * scaling


@dataclass(frozen=True)
class PPOEntropyRegularization:
    """Entropy bonus with the given weight"""
    weight: float


def surrogate_loss(
    importance_ratio: torch.Tensor,
    advantages: torch.Tensor,
    clip: Optional[PPOClip] = None
) -> torch.Tensor:
    """
    PPO surrogate policy loss

    Args:
        importance_ratio: r_t(θ), shape (T, B)
        advantages: Â_t, shape (T, B)
        clip: Clipping configuration, or None for the unclipped surrogate
    """
    unclipped = importance_ratio * advantages
    if clip is None:
        return -unclipped.mean()
    clipped = torch.clamp(
        importance_ratio, 1 - clip.epsilon, 1 + clip.epsilon
    ) * advantages
    return -torch.min(unclipped, clipped).mean()


def value_targets(
    advantage_function: AdvantageFunction,
    estimate: AdvantageEstimate,
    advantages: torch.Tensor,
    values: torch.Tensor,
    use_td_lambda_return: bool
) -> torch.Tensor:
    """
    Select the value-loss target

    TD(λ) returns (advantages + old values) are used only when requested and
    the advantages come from GAE; every other combination uses the discounted
    returns of the estimate.
    """
    if use_td_lambda_return and isinstance(advantage_function, GeneralizedAdvantageEstimation):
        return advantages + values
    return estimate.discounted_returns


class PPOAgent(PolicyGradientAgent):
    """
    PPO Agent with optional clipping, KL penalty and entropy regularization

    The agent owns a private copy of its PPOPenalty, whose adaptive β is
    mutated once per update call and persists across calls.

    Attributes:
        clip: PPOClip or None
        penalty: PPOPenalty or None
        entropy_regularization: PPOEntropyRegularization or None
        advantage_function: Advantage estimator
        use_td_lambda_return: Use advantage + old value as the value target (GAE only)
        value_estimation_loss_weight: Weight c_v of the value loss
        epoch_count: Number of optimization epochs per update
        advantages_normalizer: Streaming normalizer over (time, batch), or None
    """

    def __init__(
        self,
        environment,
        network,
        optimizer,
        clip: Optional[PPOClip] = PPOClip(),
        penalty: Optional[PPOPenalty] = None,
        entropy_regularization: Optional[PPOEntropyRegularization] = None,
        advantage_function: Optional[AdvantageFunction] = None,
        normalize_advantages: bool = True,
        use_td_lambda_return: bool = False,
        value_estimation_loss_weight: float = 0.2,
        epoch_count: int = 4
    ):
        """
        Initialize PPO agent

        Args:
            environment: Environment the agent acts in (provides action_space)
            network: ActorCriticNetwork-like module
            optimizer: tools.Optimizer over the network parameters
            clip: Importance ratio clipping (default: ε = 0.2)
            penalty: KL penalty (default: disabled)
            entropy_regularization: Entropy bonus (default: disabled)
            advantage_function: Advantage estimator
                                (default: GAE with γ = 0.99, λ = 0.95)
            normalize_advantages: Whether to normalize advantages with running statistics
            use_td_lambda_return: Whether to train the critic on TD(λ) returns
            value_estimation_loss_weight: Value loss weight
            epoch_count: Number of epochs per update
        """
        super().__init__(environment, network, optimizer)
        if advantage_function is None:
            advantage_function = GeneralizedAdvantageEstimation(
                discount_factor=0.99, discount_weight=0.95
            )
        self.clip = clip
        self.penalty = dataclasses.replace(penalty) if penalty is not None else None
        self.entropy_regularization = entropy_regularization
        self.advantage_function = advantage_function
        self.use_td_lambda_return = use_td_lambda_return
        self.value_estimation_loss_weight = value_estimation_loss_weight
        self.epoch_count = epoch_count
        self.advantages_normalizer: Optional[StreamingNormalizer] = (
            StreamingNormalizer(along_axes=(0, 1)) if normalize_advantages else None
        )

    def action_distribution(self, step):
        return self.network(step.observation).action_distribution

    def update(self, trajectory: Trajectory) -> float:
        """
        Perform PPO update on one trajectory

        Returns:
            Loss of the final epoch

        Raises:
            ValueError: If the trajectory has fewer than two entries. Nothing
                        is mutated in that case.
        """
        if len(trajectory) < 2:
            raise ValueError(
                "PPO requires at least two trajectory entries (the last one only bootstraps)."
            )
        observations = trajectory.observation
        actions = trajectory.action

        # Frozen evaluation: importance sampling baseline and advantages.
        self.network.state = trajectory.state
        with torch.no_grad():
            output = self.network(observations)

        # The last step only provides the bootstrap value.
        sequence_length = output.value.shape[0] - 1
        values = output.value[:sequence_length]
        final_value = output.value[sequence_length]

        estimate = self.advantage_function(
            step_kinds=trajectory.step_kind[:sequence_length],
            rewards=trajectory.reward[:sequence_length],
            values=values,
            final_value=final_value
        )
        advantages = estimate.advantages
        if self.advantages_normalizer is not None:
            self.advantages_normalizer.update(advantages)
            advantages = self.advantages_normalizer.normalize(advantages)
        returns = value_targets(
            self.advantage_function,
            estimate,
            advantages,
            values,
            self.use_td_lambda_return
        )

        old_distribution = output.action_distribution
        old_log_probs = old_distribution.log_prob(actions)[:sequence_length]

        last_epoch_loss = 0.0
        for epoch in range(self.epoch_count):
            # Every epoch replays the trajectory from its initial state.
            self.network.state = trajectory.state
            new_output = self.network(observations)
            new_distribution = new_output.action_distribution
            new_log_probs = new_distribution.log_prob(actions)[:sequence_length]

            importance_ratio = torch.exp(new_log_probs - old_log_probs)
            loss = surrogate_loss(importance_ratio, advantages, self.clip)

            if self.penalty is not None:
                kl = kl_divergence(old_distribution, new_distribution)[:sequence_length]
                loss = loss + self.penalty.loss(kl.mean())

            if self.entropy_regularization is not None:
                entropy = new_distribution.entropy()[:sequence_length]
                loss = loss - self.entropy_regularization.weight * entropy.mean()

            new_values = new_output.value[:sequence_length]
            value_mse = ((new_values - returns) ** 2).mean()
            loss = loss + self.value_estimation_loss_weight * value_mse

            self.optimizer(loss)
            last_epoch_loss = loss.item()
            logger.debug("PPO epoch %d: loss=%.6f", epoch, last_epoch_loss)

        if self.penalty is not None and self.penalty.adaptive_kl_beta is not None:
            self.network.state = trajectory.state
            with torch.no_grad():
                final_distribution = self.network(observations).action_distribution
                kl = kl_divergence(final_distribution, old_distribution)[:sequence_length]
            kl_mean = kl.mean().item()
            self.penalty.adapt_beta(kl_mean)
            logger.debug(
                "PPO adaptive KL: kl=%.6f beta=%.3e", kl_mean, self.penalty.adaptive_kl_beta
            )

        return last_epoch_loss
