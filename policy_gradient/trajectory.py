"""
Step and Trajectory Data Model

Every recurrence and mask in this package is built from step kinds:
- FIRST: the step that starts an episode
- TRANSITION: a step inside an episode
- LAST: the step that ends an episode

A trajectory entry recorded at time t pairs the observation the agent acted
on with the kind and reward of the step that the action produced. The kind
at index t therefore tells whether the action taken at t ended the episode.

Tensor Conventions:
- Batched environments produce step kinds and rewards of shape (B,)
- Stacked trajectories have shape (T, B, ...) with time as the first axis
"""

import enum
from dataclasses import dataclass
from typing import Any, List, Sequence

import torch


class StepKind(enum.IntEnum):
    """Tag marking a time step as episode start, mid-episode or episode end"""

    FIRST = 0
    TRANSITION = 1
    LAST = 2


def _as_kind_tensor(step_kinds) -> torch.Tensor:
    if isinstance(step_kinds, torch.Tensor):
        return step_kinds
    return torch.as_tensor(step_kinds, dtype=torch.long)


def is_first(step_kinds) -> torch.Tensor:
    """Boolean tensor that is True where the step kind is FIRST"""
    return _as_kind_tensor(step_kinds) == StepKind.FIRST


def is_last(step_kinds) -> torch.Tensor:
    """Boolean tensor that is True where the step kind is LAST"""
    return _as_kind_tensor(step_kinds) == StepKind.LAST


def complete_episode_mask(step_kinds) -> torch.Tensor:
    """
    Mask selecting the entries that belong to episodes completed in the window

    An entry belongs to a completed episode when a LAST kind occurs at or after
    it in the same batch slot. Trailing entries of an episode that is still
    running when the window closes are masked out.

    Args:
        step_kinds: Step kinds, shape (T, ...) with time as the first axis

    Returns:
        Boolean mask with the same shape as step_kinds
    """
    last = is_last(step_kinds).to(torch.int64)
    # Reverse cumulative max along time: 1 from the final LAST backwards.
    reversed_last = torch.flip(last, dims=[0])
    seen_last = torch.cummax(reversed_last, dim=0).values
    return torch.flip(seen_last, dims=[0]).bool()


def episode_count(step_kinds) -> torch.Tensor:
    """Number of LAST kinds in the window, as a scalar tensor"""
    return is_last(step_kinds).sum()


@dataclass
class Step:
    """
    One interaction outcome returned by an environment

    Attributes:
        kind: Step kinds, shape (B,) for batched environments or () otherwise
        observation: Observation tensor (or nested dict/tuple of tensors)
        reward: Rewards, same shape as kind
    """

    kind: torch.Tensor
    observation: Any
    reward: torch.Tensor


def _stack(values: Sequence[Any]) -> Any:
    """Stack a sequence of tensors, or of dicts/tuples of tensors, along a new time axis"""
    first = values[0]
    if isinstance(first, torch.Tensor):
        return torch.stack(list(values), dim=0)
    if isinstance(first, dict):
        return {key: _stack([v[key] for v in values]) for key in first}
    if isinstance(first, (list, tuple)):
        return type(first)(_stack(list(group)) for group in zip(*values))
    return torch.stack([torch.as_tensor(v) for v in values], dim=0)


@dataclass
class Trajectory:
    """
    Batched, time-ordered record of one rollout segment

    The same structure is used for a single entry produced during rollout
    (fields without a time axis) and for the stacked trajectory handed to an
    agent's update (fields of shape (T, B, ...)).

    Attributes:
        step_kind: Kind of the step produced by the action at each index
        observation: Observation the action was chosen from
        action: Action taken
        reward: Reward received for the action
        state: Network recurrent state before the first entry
               (None for feed-forward networks)
    """

    step_kind: torch.Tensor
    observation: Any
    action: torch.Tensor
    reward: torch.Tensor
    state: Any = None

    def __len__(self) -> int:
        return self.step_kind.shape[0]

    @classmethod
    def stack(cls, entries: List['Trajectory']) -> 'Trajectory':
        """
        Stack per-step entries into one trajectory of length T = len(entries)

        The recurrent state of the stacked trajectory is the state recorded
        with the first entry, which is the state the network must be restored
        to before re-evaluating the whole window.
        """
        if not entries:
            raise ValueError("Cannot stack an empty list of trajectory entries")
        return cls(
            step_kind=_stack([e.step_kind for e in entries]),
            observation=_stack([e.observation for e in entries]),
            action=_stack([e.action for e in entries]),
            reward=_stack([e.reward for e in entries]),
            state=entries[0].state,
        )
