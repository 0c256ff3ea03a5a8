"""
Batched CartPole Environment

Classic cart-pole balancing task (Barto, Sutton & Anderson, 1983), simulated
for B independent slots at once with torch tensors.

- Actions: 0 pushes the cart left, 1 pushes it right
- Observation: (position, velocity, angle, angular velocity), shape (B, 4)
- Reward: 1 for every step
- An episode ends (LAST) when the pole angle exceeds 12 degrees or the cart
  leaves [-2.4, 2.4]. On the following step the slot is re-randomized and
  reports a FIRST step; other slots keep running.
"""

import math
from typing import Optional

import numpy as np
import torch
from gymnasium import spaces

from envs.environment import Environment
from policy_gradient.trajectory import Step, StepKind

GRAVITY = 9.8
CART_MASS = 1.0
POLE_MASS = 0.1
LENGTH = 0.5  # Half the pole length
FORCE_MAGNITUDE = 10.0
SECONDS_BETWEEN_UPDATES = 0.02
ANGLE_THRESHOLD = 12 * 2 * math.pi / 360
POSITION_THRESHOLD = 2.4
TOTAL_MASS = CART_MASS + POLE_MASS
POLE_MASS_LENGTH = POLE_MASS * LENGTH


class CartPoleEnvironment(Environment):
    """
    Batched cart-pole simulation

    Args:
        batch_size: Number of independent slots B
        seed: Seed of the generator used for initial states
    """

    def __init__(self, batch_size: int = 1, seed: Optional[int] = None):
        self.batch_size = batch_size
        self._action_space = spaces.Discrete(2)
        high = np.array(
            [POSITION_THRESHOLD * 2, np.finfo(np.float32).max,
             ANGLE_THRESHOLD * 2, np.finfo(np.float32).max],
            dtype=np.float32
        )
        self.observation_space = spaces.Box(-high, high, dtype=np.float32)
        self._generator = torch.Generator()
        if seed is not None:
            self._generator.manual_seed(seed)
        self._randomize()
        super().__init__()

    @property
    def action_space(self) -> spaces.Discrete:
        return self._action_space

    def _random_tensor(self) -> torch.Tensor:
        return torch.rand(self.batch_size, generator=self._generator) * 0.1 - 0.05

    def _randomize(self):
        self._position = self._random_tensor()
        self._velocity = self._random_tensor()
        self._angle = self._random_tensor()
        self._angular_velocity = self._random_tensor()
        self._needs_reset = torch.zeros(self.batch_size, dtype=torch.bool)

    def _observation(self) -> torch.Tensor:
        return torch.stack(
            [self._position, self._velocity, self._angle, self._angular_velocity],
            dim=-1
        )

    def _reset(self) -> Step:
        self._randomize()
        return Step(
            kind=torch.full((self.batch_size,), int(StepKind.FIRST), dtype=torch.long),
            observation=self._observation(),
            reward=torch.zeros(self.batch_size)
        )

    def _step(self, action) -> Step:
        action = torch.as_tensor(action).reshape(self.batch_size)
        if not all(self._action_space.contains(int(a)) for a in action):
            raise ValueError("Invalid action provided.")

        force = (2 * action - 1).float() * FORCE_MAGNITUDE
        cos_angle = torch.cos(self._angle)
        sin_angle = torch.sin(self._angle)
        temp = force + POLE_MASS_LENGTH * self._angular_velocity ** 2 * sin_angle
        angle_acc = (GRAVITY * sin_angle - temp * cos_angle / TOTAL_MASS) / (
            LENGTH * (4 / 3 - POLE_MASS * cos_angle ** 2 / TOTAL_MASS)
        )
        position_acc = (temp - POLE_MASS_LENGTH * angle_acc * cos_angle) / TOTAL_MASS
        self._position = self._position + SECONDS_BETWEEN_UPDATES * self._velocity
        self._velocity = self._velocity + SECONDS_BETWEEN_UPDATES * position_acc
        self._angle = self._angle + SECONDS_BETWEEN_UPDATES * self._angular_velocity
        self._angular_velocity = self._angular_velocity + SECONDS_BETWEEN_UPDATES * angle_acc

        # Slots that ended on the previous step start a new episode.
        reset = self._needs_reset
        self._position = torch.where(reset, self._random_tensor(), self._position)
        self._velocity = torch.where(reset, self._random_tensor(), self._velocity)
        self._angle = torch.where(reset, self._random_tensor(), self._angle)
        self._angular_velocity = torch.where(
            reset, self._random_tensor(), self._angular_velocity
        )

        failed = (
            (self._position < -POSITION_THRESHOLD)
            | (self._position > POSITION_THRESHOLD)
            | (self._angle < -ANGLE_THRESHOLD)
            | (self._angle > ANGLE_THRESHOLD)
        )
        new_needs_reset = ~reset & failed
        kind = torch.where(
            reset,
            torch.full_like(action, int(StepKind.FIRST), dtype=torch.long),
            new_needs_reset.long() + 1
        )
        self._needs_reset = new_needs_reset
        return Step(
            kind=kind,
            observation=self._observation(),
            reward=torch.ones(self.batch_size)
        )
