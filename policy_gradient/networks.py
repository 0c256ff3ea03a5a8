"""
Policy and Actor-Critic Networks

This module implements the network collaborators used by the policy gradient
agents:
- PolicyNetwork: π_θ(a|s), used by REINFORCE
- ActorCriticNetwork: (π_θ(a|s), V_ϕ(s)) pairs, used by A2C and PPO

Network Architecture:
- MLP feature extractor for vector observations (e.g. CartPole)
- Policy head: Linear layer -> Categorical distribution
- Value head: Linear layer -> scalar value

Networks accept inputs with any number of leading dimensions, so the same
module evaluates a single batched step (B, D) during rollout and a whole
trajectory (T, B, D) during an update.

Every network carries a `state` attribute holding its recurrent state. The
feed-forward networks here keep it at None; agents still save and restore it
around rollouts and update epochs so that recurrent networks can be dropped in.
"""

from typing import NamedTuple, Sequence

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F
from torch.distributions import Categorical, Distribution


def orthogonal_linear(in_features: int, out_features: int, gain: float = np.sqrt(2)) -> nn.Linear:
    """
    Linear layer with orthogonal weights (Saxe et al. 2013) and zero bias

    Hidden ReLU layers use gain sqrt(2); heads pass a smaller gain.
    """
    layer = nn.Linear(in_features, out_features)
    nn.init.orthogonal_(layer.weight, gain=gain)
    nn.init.zeros_(layer.bias)
    return layer


class ActorCriticOutput(NamedTuple):
    """Paired action distribution and value estimate"""
    action_distribution: Distribution
    value: torch.Tensor


class Network(nn.Module):
    """Base class for networks carrying a (possibly empty) recurrent state"""

    def __init__(self):
        super().__init__()
        self.state = None


class MLPFeatureExtractor(nn.Module):
    """
    Fully connected feature extractor for vector observations

    Network Structure:
        [Linear -> ReLU] x len(hidden_sizes)
    """

    def __init__(self, input_dim: int, hidden_sizes: Sequence[int] = (64, 64)):
        """
        Args:
            input_dim: Size of the observation vector (4 for CartPole)
            hidden_sizes: Width of each hidden layer
        """
        super().__init__()
        layers = []
        last_dim = input_dim
        for size in hidden_sizes:
            layers.append(orthogonal_linear(last_dim, size))
            last_dim = size
        self.layers = nn.ModuleList(layers)
        self.feature_dim = last_dim

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        x = x.float()
        for layer in self.layers:
            x = F.relu(layer(x))
        return x


class PolicyNetwork(Network):
    """
    Policy Network π_θ(a|s)

    Outputs a Categorical distribution over discrete actions. Used to:
    1. Sample actions during rollout collection
    2. Compute log probabilities for the policy gradient
    3. Compute policy entropy for entropy regularization
    """

    def __init__(
        self,
        input_dim: int,
        num_actions: int,
        hidden_sizes: Sequence[int] = (64, 64)
    ):
        super().__init__()
        self.num_actions = num_actions
        self.feature_extractor = MLPFeatureExtractor(input_dim, hidden_sizes)
        # Near-uniform initial policy.
        self.policy_head = orthogonal_linear(
            self.feature_extractor.feature_dim, num_actions, gain=0.01
        )

    def forward(self, obs: torch.Tensor) -> Categorical:
        """
        Args:
            obs: Observation tensor, shape (..., input_dim)

        Returns:
            Categorical distribution with batch shape obs.shape[:-1]
        """
        features = self.feature_extractor(obs)
        return Categorical(logits=self.policy_head(features))


class ActorCriticNetwork(Network):
    """
    Actor-Critic Network producing (π_θ(a|s), V_ϕ(s))

    Actor and critic share the feature extractor. The value estimate is
    used both as the advantage baseline and, at the final trajectory index,
    as the bootstrap value.
    """

    def __init__(
        self,
        input_dim: int,
        num_actions: int,
        hidden_sizes: Sequence[int] = (64, 64)
    ):
        super().__init__()
        self.num_actions = num_actions
        self.feature_extractor = MLPFeatureExtractor(input_dim, hidden_sizes)
        feature_dim = self.feature_extractor.feature_dim

        self.policy_head = orthogonal_linear(feature_dim, num_actions, gain=0.01)

        self.value_head = orthogonal_linear(feature_dim, 1, gain=1.0)

    def forward(self, obs: torch.Tensor) -> ActorCriticOutput:
        """
        Args:
            obs: Observation tensor, shape (..., input_dim)

        Returns:
            ActorCriticOutput with a Categorical of batch shape obs.shape[:-1]
            and values of shape obs.shape[:-1]
        """
        features = self.feature_extractor(obs)
        action_dist = Categorical(logits=self.policy_head(features))
        values = self.value_head(features).squeeze(-1)
        return ActorCriticOutput(action_distribution=action_dist, value=values)
