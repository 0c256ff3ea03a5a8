"""
Policy Gradient Agent Base - Rollout Loop

All policy gradient agents share one contract: collect a trajectory by driving
an environment with actions sampled from the current stochastic policy, then
consume that trajectory in a single update(trajectory) call that returns the
scalar loss.

Algorithm Overview:
1. Starting from the environment's current step, repeat while
   steps < max_steps and episodes < max_episodes:
    a. Sample an action from π_θ(·|s_t)
    b. Advance the environment with that action
    c. Record (kind_{t+1}, s_t, a_t, r_{t+1}, pre-step recurrent state)
    d. Invoke the step callbacks with the new entry
    e. Count non-LAST slots as steps and LAST slots as finished episodes
2. Stack the entries into one batched Trajectory
3. Call update(trajectory)
"""

import logging
import sys
from abc import ABC, abstractmethod
from typing import Callable, Sequence

import torch
from torch.distributions import Distribution

from policy_gradient.trajectory import Step, Trajectory, is_last

logger = logging.getLogger(__name__)

StepCallback = Callable[[Trajectory], None]


class PolicyGradientAgent(ABC):
    """
    Base class of REINFORCE, A2C and PPO agents

    Subclasses own their network, optimizer and any normalizer or adaptive
    state, and mutate them only inside their own update() call. Update calls
    on one agent must not run concurrently.

    Attributes:
        action_space: Action space of the environment the agent acts in
        network: Network collaborator (torch module with a `state` attribute)
        optimizer: Gradient + parameter update collaborator (tools.Optimizer)
    """

    def __init__(self, environment, network, optimizer):
        self.action_space = environment.action_space
        self.network = network
        self.optimizer = optimizer

    @property
    def state(self):
        """Recurrent state of the network"""
        return self.network.state

    @state.setter
    def state(self, value):
        self.network.state = value

    @abstractmethod
    def action_distribution(self, step: Step) -> Distribution:
        """Action distribution π_θ(·|s) at the step's observation"""

    def action(self, step: Step, deterministic: bool = False) -> torch.Tensor:
        """
        Select an action for the given step

        Args:
            step: Current environment step
            deterministic: If True, select the most probable action
                           If False, sample from the distribution (default)
        """
        with torch.no_grad():
            distribution = self.action_distribution(step)
            if deterministic:
                return distribution.probs.argmax(dim=-1)
            return distribution.sample()

    @abstractmethod
    def update(self, trajectory: Trajectory) -> float:
        """Consume one trajectory, update the network and return the loss"""

    def collect_trajectory(
        self,
        environment,
        max_steps: int = sys.maxsize,
        max_episodes: int = sys.maxsize,
        step_callbacks: Sequence[StepCallback] = ()
    ) -> Trajectory:
        """
        Drive the environment with the current policy and record a trajectory

        Args:
            environment: Environment collaborator (current_step, step)
            max_steps: Stop once this many non-LAST slot steps were collected
            max_episodes: Stop once this many episodes ended (LAST slots)
            step_callbacks: Observers invoked, in order, with every new entry.
                            Exceptions raised by callbacks propagate.

        Returns:
            Stacked trajectory of shape (T, B, ...)
        """
        entries = []
        current_step = environment.current_step()
        num_steps = 0
        num_episodes = 0
        while num_steps < max_steps and num_episodes < max_episodes:
            state = self.state
            action = self.action(current_step, deterministic=False)
            next_step = environment.step(action)
            entry = Trajectory(
                step_kind=next_step.kind,
                observation=current_step.observation,
                action=action,
                reward=next_step.reward,
                state=state
            )
            entries.append(entry)
            for callback in step_callbacks:
                callback(entry)
            last = is_last(next_step.kind)
            num_steps += int((~last).sum())
            num_episodes += int(last.sum())
            current_step = next_step

        logger.debug(
            "Collected rollout: %d entries, %d steps, %d episodes",
            len(entries), num_steps, num_episodes
        )
        return Trajectory.stack(entries)

    def collect_and_update(
        self,
        environment,
        max_steps: int = sys.maxsize,
        max_episodes: int = sys.maxsize,
        step_callbacks: Sequence[StepCallback] = ()
    ) -> float:
        """Collect one trajectory with collect_trajectory() and update on it"""
        trajectory = self.collect_trajectory(
            environment,
            max_steps=max_steps,
            max_episodes=max_episodes,
            step_callbacks=step_callbacks
        )
        return self.update(trajectory)
