"""
Environment Interface

Environments are batched: every step carries B slots, and each slot runs its
own sequence of episodes. An environment exposes:
- reset() -> Step: start new episodes in every slot
- step(action) -> Step: advance every slot with the given actions
- current_step() -> Step: the last step returned (resetting first if needed)
- action_space: gymnasium space the actions are validated against
"""

from abc import ABC, abstractmethod

from policy_gradient.trajectory import Step


class Environment(ABC):
    """Base class of batched environments"""

    batch_size: int = 1

    def __init__(self):
        self._current_step = None

    @property
    @abstractmethod
    def action_space(self):
        ...

    def current_step(self) -> Step:
        if self._current_step is None:
            self.reset()
        return self._current_step

    def step(self, action) -> Step:
        self._current_step = self._step(action)
        return self._current_step

    def reset(self) -> Step:
        self._current_step = self._reset()
        return self._current_step

    @abstractmethod
    def _step(self, action) -> Step:
        ...

    @abstractmethod
    def _reset(self) -> Step:
        ...

    def close(self):
        pass
