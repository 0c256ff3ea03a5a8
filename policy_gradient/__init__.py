"""
Policy Gradient Reinforcement Learning

This package implements three on-policy policy gradient algorithms on top of
a shared rollout loop and return/advantage engine:

- REINFORCE: Williams (1992), Monte Carlo policy gradient
- A2C: synchronous advantage actor-critic
- PPO: Schulman et al. (2017), clipped and/or KL-penalized surrogate

Key Components:
- trajectory.py: StepKind, Step and Trajectory data model
- values.py: Discounted returns, empirical advantages and GAE
- normalization.py: Streaming return/advantage normalizer
- agent.py: Agent base class with the rollout loop
- reinforce_agent.py, a2c_agent.py, ppo_agent.py: Update algorithms
- networks.py: Policy and actor-critic networks
- tools.py, schedules.py: Optimizer wrapper, learning rate schedules, helpers
"""

from policy_gradient.trajectory import StepKind, Step, Trajectory
from policy_gradient.values import (
    AdvantageEstimate,
    AdvantageFunction,
    EmpiricalAdvantageEstimation,
    GeneralizedAdvantageEstimation,
    discounted_returns,
)
from policy_gradient.normalization import StreamingNormalizer
from policy_gradient.networks import ActorCriticNetwork, ActorCriticOutput, PolicyNetwork
from policy_gradient.agent import PolicyGradientAgent
from policy_gradient.reinforce_agent import ReinforceAgent
from policy_gradient.a2c_agent import A2CAgent
from policy_gradient.ppo_agent import PPOAgent, PPOClip, PPOEntropyRegularization, PPOPenalty
from policy_gradient.tools import Optimizer

__all__ = [
    'StepKind', 'Step', 'Trajectory',
    'AdvantageEstimate', 'AdvantageFunction', 'EmpiricalAdvantageEstimation',
    'GeneralizedAdvantageEstimation', 'discounted_returns',
    'StreamingNormalizer',
    'ActorCriticNetwork', 'ActorCriticOutput', 'PolicyNetwork',
    'PolicyGradientAgent', 'ReinforceAgent', 'A2CAgent',
    'PPOAgent', 'PPOClip', 'PPOEntropyRegularization', 'PPOPenalty',
    'Optimizer',
]
