"""
Environment Wrappers

- TimeLimit: ends episodes after a fixed number of steps
- ActionRepeat: repeats each action while accumulating rewards
- RunStatistics: counts resets, episodes and steps as the environment runs
"""

import torch

from envs.environment import Environment
from policy_gradient.trajectory import Step, StepKind, is_first, is_last


class Wrapper(Environment):
    """Environment delegating to a wrapped environment"""

    def __init__(self, environment: Environment):
        self.wrapped_environment = environment
        self.batch_size = environment.batch_size
        super().__init__()

    @property
    def action_space(self):
        return self.wrapped_environment.action_space

    def _step(self, action) -> Step:
        return self.wrapped_environment.step(action)

    def _reset(self) -> Step:
        return self.wrapped_environment.reset()

    def close(self):
        self.wrapped_environment.close()


class TimeLimit(Wrapper):
    """
    Ends episodes after `limit` steps

    Once the limit is reached every slot is marked LAST, except slots the
    wrapped environment has just restarted, which keep their FIRST step. The
    following call to step() resets the whole wrapped environment instead of
    stepping it. The batch is also reset once every slot ends on its own.
    """

    def __init__(self, environment: Environment, limit: int):
        super().__init__(environment)
        self.limit = limit
        self._num_steps = 0
        self._reset_required = False

    def _step(self, action) -> Step:
        if self._reset_required:
            return self._reset()

        result = self.wrapped_environment.step(action)
        self._num_steps += 1

        limit_reached = self._num_steps >= self.limit
        if limit_reached:
            # Slots that just restarted keep their FIRST step.
            kind = torch.where(
                is_first(result.kind),
                result.kind,
                torch.full_like(result.kind, int(StepKind.LAST))
            )
            result = Step(
                kind=kind,
                observation=result.observation,
                reward=result.reward
            )

        if limit_reached or bool(is_last(result.kind).all()):
            self._num_steps = 0
            self._reset_required = True

        return result

    def _reset(self) -> Step:
        self._num_steps = 0
        self._reset_required = False
        return self.wrapped_environment.reset()


class ActionRepeat(Wrapper):
    """Repeats every action `num_repeats` times, summing the rewards"""

    def __init__(self, environment: Environment, num_repeats: int):
        if num_repeats <= 1:
            raise ValueError("'num_repeats' should be greater than 1.")
        super().__init__(environment)
        self.num_repeats = num_repeats

    def _step(self, action) -> Step:
        result = self.wrapped_environment.step(action)
        reward = result.reward
        for _ in range(1, self.num_repeats):
            # Stop repeating as soon as any slot ends its episode.
            if bool(is_last(result.kind).any()):
                break
            result = self.wrapped_environment.step(action)
            reward = reward + result.reward
        return Step(kind=result.kind, observation=result.observation, reward=reward)


class RunStatistics(Wrapper):
    """
    Collects statistics as the environment is being used

    Attributes:
        num_resets: Number of FIRST steps (including explicit resets)
        num_episodes: Number of LAST steps. Episodes that never reach a LAST
                      step are not counted.
        num_episode_steps: Steps taken in the current episode, per slot
        num_total_steps: Total number of steps, ignoring FIRST steps
    """

    def __init__(self, environment: Environment):
        super().__init__(environment)
        self.num_resets = 0
        self.num_episodes = 0
        self.num_episode_steps = torch.zeros(self.batch_size, dtype=torch.long)
        self.num_total_steps = 0

    def _step(self, action) -> Step:
        result = self.wrapped_environment.step(action)
        first = is_first(result.kind).reshape(self.batch_size)

        self.num_resets += int(first.sum())
        self.num_episode_steps = torch.where(
            first, torch.zeros_like(self.num_episode_steps), self.num_episode_steps + 1
        )
        self.num_total_steps += int((~first).sum())
        self.num_episodes += int(is_last(result.kind).sum())

        return result

    def _reset(self) -> Step:
        self.num_resets += self.batch_size
        self.num_episode_steps = torch.zeros(self.batch_size, dtype=torch.long)
        return self.wrapped_environment.reset()
