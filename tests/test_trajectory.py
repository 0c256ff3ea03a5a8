"""Tests for the step kind helpers and trajectory stacking."""

import pytest
import torch

from policy_gradient.trajectory import (
    StepKind,
    Trajectory,
    complete_episode_mask,
    episode_count,
    is_first,
    is_last,
)

F, T, L = int(StepKind.FIRST), int(StepKind.TRANSITION), int(StepKind.LAST)


class TestStepKindHelpers:

    def test_is_first_and_is_last(self):
        kinds = torch.tensor([F, T, L, T])
        assert is_first(kinds).tolist() == [True, False, False, False]
        assert is_last(kinds).tolist() == [False, False, True, False]

    def test_accepts_python_lists(self):
        assert is_last([T, L]).tolist() == [False, True]

    def test_episode_count_sums_over_batch(self):
        kinds = torch.tensor([[T, L], [L, T], [F, L]])
        assert episode_count(kinds).item() == 3


class TestCompleteEpisodeMask:

    def test_trailing_incomplete_episode_is_masked(self):
        kinds = torch.tensor([T, L, F, T, T])
        assert complete_episode_mask(kinds).tolist() == [True, True, False, False, False]

    def test_mask_is_computed_per_slot(self):
        kinds = torch.tensor([
            [T, T],
            [L, T],
            [F, T],
            [T, L],
        ])
        mask = complete_episode_mask(kinds)
        assert mask[:, 0].tolist() == [True, True, False, False]
        assert mask[:, 1].tolist() == [True, True, True, True]

    def test_no_completed_episode(self):
        kinds = torch.tensor([T, T, T])
        assert not complete_episode_mask(kinds).any()


class TestTrajectoryStack:

    def test_stack_adds_time_axis_and_keeps_first_state(self):
        entries = [
            Trajectory(
                step_kind=torch.tensor([T, T]),
                observation=torch.full((2, 3), float(i)),
                action=torch.tensor([i, i]),
                reward=torch.tensor([1.0, 2.0]),
                state=f"state-{i}"
            )
            for i in range(4)
        ]
        stacked = Trajectory.stack(entries)

        assert len(stacked) == 4
        assert stacked.step_kind.shape == (4, 2)
        assert stacked.observation.shape == (4, 2, 3)
        assert stacked.action[:, 0].tolist() == [0, 1, 2, 3]
        assert stacked.state == "state-0"

    def test_stack_nested_observations(self):
        entries = [
            Trajectory(
                step_kind=torch.tensor(T),
                observation={'image': torch.zeros(2, 2), 'speed': torch.tensor(1.0)},
                action=torch.tensor(0),
                reward=torch.tensor(0.0)
            )
            for _ in range(3)
        ]
        stacked = Trajectory.stack(entries)
        assert stacked.observation['image'].shape == (3, 2, 2)
        assert stacked.observation['speed'].shape == (3,)

    def test_stack_empty_raises(self):
        with pytest.raises(ValueError):
            Trajectory.stack([])
