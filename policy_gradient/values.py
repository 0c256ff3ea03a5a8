"""
Discounted Returns and Advantage Estimation

This module implements the return/advantage engine shared by all policy
gradient agents:

- discounted_returns: the backward return recurrence with episode-boundary
  masking (Sutton & Barto, "Reinforcement Learning: An Introduction", 2nd ed.)
- EmpiricalAdvantageEstimation: A_t = G_t - V(s_t)
- GeneralizedAdvantageEstimation: Schulman et al. (2016) "High-Dimensional
  Continuous Control Using Generalized Advantage Estimation"
  https://arxiv.org/abs/1506.02438

Naming Conventions (from papers):
- γ (gamma): Discount factor for returns
- λ (lambda): GAE discount weight for bias-variance tradeoff
- δ_t: TD residual = r_t + γV(s_{t+1}) - V(s_t)

All functions take time as the first axis and operate independently on every
batch slot. The recurrences are sequential in time, O(T), and vectorized over
the batch.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

import torch

from policy_gradient.trajectory import is_last


def discounted_returns(
    discount_factor: float,
    step_kinds: torch.Tensor,
    rewards: torch.Tensor,
    final_value: Optional[torch.Tensor] = None
) -> torch.Tensor:
    """
    Compute discounted returns backward through time

    Recurrence:
        G_{T-1} = r_{T-1} + γ · finalValue · notLast_{T-1}
        G_t     = r_t + γ · G_{t+1} · notLast_t

    The notLast mask zeroes the carried-forward return whenever the step at t
    ends an episode, so returns never leak across episode boundaries.

    Args:
        discount_factor: Reward discount factor γ in [0, 1)
        step_kinds: Step kinds, shape (T, ...)
        rewards: Rewards, shape (T, ...)
        final_value: Bootstrap value for index T, shape rewards.shape[1:]
                     Defaults to zeros (no bootstrap)

    Returns:
        Discounted returns, same shape as rewards
    """
    not_last = (~is_last(step_kinds)).to(rewards.dtype)
    if final_value is None:
        future_return = rewards.new_zeros(rewards.shape[1:])
    else:
        future_return = final_value

    returns = []
    for t in reversed(range(rewards.shape[0])):
        future_return = rewards[t] + discount_factor * future_return * not_last[t]
        returns.append(future_return)
    if not returns:
        return torch.zeros_like(rewards)
    returns.reverse()
    return torch.stack(returns, dim=0)


class AdvantageEstimate:
    """
    Advantage estimation result

    Attributes:
        advantages: Estimated advantages, used to train the actor
        discounted_returns: Discounted returns, used to train the critic.
                            Computed on first access and cached.
    """

    def __init__(
        self,
        advantages: torch.Tensor,
        discounted_returns: Callable[[], torch.Tensor]
    ):
        self.advantages = advantages
        self._compute_returns = discounted_returns
        self._returns: Optional[torch.Tensor] = None

    @property
    def discounted_returns(self) -> torch.Tensor:
        if self._returns is None:
            self._returns = self._compute_returns()
        return self._returns


class AdvantageFunction(ABC):
    """
    Common interface of advantage estimators

    Called with T step kinds, rewards and values, plus the bootstrap value for
    index T, and returns an AdvantageEstimate over the same T steps.
    """

    def __init__(self, discount_factor: float):
        self.discount_factor = discount_factor

    @abstractmethod
    def __call__(
        self,
        step_kinds: torch.Tensor,
        rewards: torch.Tensor,
        values: torch.Tensor,
        final_value: torch.Tensor
    ) -> AdvantageEstimate:
        ...


class EmpiricalAdvantageEstimation(AdvantageFunction):
    """
    Empirical advantage estimation

    advantage[t] = discountedReturn[t] - value[t], where the returns are
    bootstrapped with the supplied final value.
    """

    def __call__(self, step_kinds, rewards, values, final_value):
        returns = discounted_returns(
            self.discount_factor, step_kinds, rewards, final_value
        )
        return AdvantageEstimate(
            advantages=returns - values,
            discounted_returns=lambda: returns
        )


class GeneralizedAdvantageEstimation(AdvantageFunction):
    """
    Generalized Advantage Estimation (GAE)

    Paper Reference: Schulman et al. (2016), Equation 16
        Â_t = δ_t + (γλ)Â_{t+1}
        where δ_t = r_t + γV(s_{t+1})·notLast_t - V(s_t)

    λ = 1 recovers the empirical (Monte Carlo) estimator, λ = 0 the one-step
    TD residual. The discounted returns attached to the estimate always come
    from discounted_returns() and do not depend on λ.
    """

    def __init__(self, discount_factor: float, discount_weight: float = 1.0):
        """
        Args:
            discount_factor: Reward discount factor γ, between 0.0 and 1.0
            discount_weight: GAE weight λ, between 0.0 and 1.0
        """
        super().__init__(discount_factor)
        self.discount_weight = discount_weight

    def __call__(self, step_kinds, rewards, values, final_value):
        gamma = self.discount_factor
        lam = self.discount_weight
        not_last = (~is_last(step_kinds)).to(rewards.dtype)

        advantages = []
        next_value = final_value
        next_advantage = rewards.new_zeros(rewards.shape[1:])
        for t in reversed(range(rewards.shape[0])):
            delta = rewards[t] + gamma * next_value * not_last[t] - values[t]
            next_advantage = delta + gamma * lam * next_advantage * not_last[t]
            advantages.append(next_advantage)
            next_value = values[t]
        advantages.reverse()
        if advantages:
            advantages = torch.stack(advantages, dim=0)
        else:
            advantages = torch.zeros_like(rewards)

        return AdvantageEstimate(
            advantages=advantages,
            discounted_returns=lambda: discounted_returns(
                gamma, step_kinds, rewards, final_value
            )
        )
