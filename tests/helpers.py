"""Test doubles: scripted environments, tiny deterministic networks, optimizer spies."""

import torch
import torch.nn as nn
from gymnasium import spaces
from torch.distributions import Categorical

from envs.environment import Environment
from policy_gradient.networks import ActorCriticOutput, Network
from policy_gradient.trajectory import Step, StepKind


class CountdownEnvironment(Environment):
    """
    Deterministic finite-horizon environment

    Every episode lasts `horizon` actions; the action ending it yields a LAST
    step, the next action a FIRST step. Observations are the one-hot position
    within the episode; the reward is 1 for action 1 and 0 otherwise.
    """

    def __init__(self, horizon: int = 3, batch_size: int = 1):
        self.horizon = horizon
        self.batch_size = batch_size
        self._t = torch.zeros(batch_size, dtype=torch.long)
        self._space = spaces.Discrete(2)
        super().__init__()

    @property
    def action_space(self):
        return self._space

    def _observation(self):
        return nn.functional.one_hot(self._t, self.horizon + 1).float()

    def _reset(self):
        self._t = torch.zeros(self.batch_size, dtype=torch.long)
        return Step(
            kind=torch.full((self.batch_size,), int(StepKind.FIRST)),
            observation=self._observation(),
            reward=torch.zeros(self.batch_size)
        )

    def _step(self, action):
        action = torch.as_tensor(action).reshape(self.batch_size)
        finished = self._t >= self.horizon
        self._t = torch.where(finished, torch.zeros_like(self._t), self._t + 1)
        kind = torch.where(
            finished,
            torch.full_like(self._t, int(StepKind.FIRST)),
            torch.where(
                self._t >= self.horizon,
                torch.full_like(self._t, int(StepKind.LAST)),
                torch.full_like(self._t, int(StepKind.TRANSITION))
            )
        )
        reward = torch.where(finished, torch.zeros(self.batch_size), action.float())
        return Step(kind=kind, observation=self._observation(), reward=reward)


class LinearPolicy(Network):
    """Single linear layer producing Categorical logits"""

    def __init__(self, input_dim: int, num_actions: int = 2):
        super().__init__()
        self.linear = nn.Linear(input_dim, num_actions)
        nn.init.normal_(self.linear.weight, std=0.5)
        nn.init.zeros_(self.linear.bias)

    def forward(self, obs):
        return Categorical(logits=self.linear(obs.float()))


class LinearActorCritic(Network):
    """Linear policy and value heads on the raw observation"""

    def __init__(self, input_dim: int, num_actions: int = 2):
        super().__init__()
        self.policy = nn.Linear(input_dim, num_actions)
        self.value = nn.Linear(input_dim, 1)
        nn.init.normal_(self.policy.weight, std=0.5)
        nn.init.normal_(self.value.weight, std=0.5)
        nn.init.zeros_(self.policy.bias)
        nn.init.zeros_(self.value.bias)

    def forward(self, obs):
        obs = obs.float()
        return ActorCriticOutput(
            action_distribution=Categorical(logits=self.policy(obs)),
            value=self.value(obs).squeeze(-1)
        )


class RecordingOptimizer:
    """Optimizer double recording losses without touching parameters"""

    def __init__(self):
        self.losses = []
        self.learning_rate = 0.0

    def __call__(self, loss):
        self.losses.append(loss.detach().clone())
        return {}


class ScriptedEnvironment(Environment):
    """Replays a fixed sequence of per-slot step kinds; rewards are always 1"""

    def __init__(self, kinds):
        self._kinds = torch.as_tensor(kinds)
        self.batch_size = self._kinds.shape[1]
        self._index = 0
        self._space = spaces.Discrete(2)
        super().__init__()

    @property
    def action_space(self):
        return self._space

    def _reset(self):
        return Step(
            kind=torch.full((self.batch_size,), int(StepKind.FIRST)),
            observation=torch.zeros(self.batch_size, 1),
            reward=torch.zeros(self.batch_size)
        )

    def _step(self, action):
        kind = self._kinds[self._index]
        self._index += 1
        return Step(
            kind=kind,
            observation=torch.zeros(self.batch_size, 1),
            reward=torch.ones(self.batch_size)
        )
