"""Tests for the batched CartPole environment."""

import pytest
import torch

from envs.cartpole import ANGLE_THRESHOLD, CartPoleEnvironment
from policy_gradient.trajectory import StepKind

F, T, L = int(StepKind.FIRST), int(StepKind.TRANSITION), int(StepKind.LAST)


class TestCartPoleEnvironment:

    def test_reset_starts_every_slot(self):
        env = CartPoleEnvironment(batch_size=3, seed=1)
        step = env.reset()

        assert step.kind.tolist() == [F, F, F]
        assert step.observation.shape == (3, 4)
        assert (step.observation.abs() <= 0.05).all()
        assert torch.equal(step.reward, torch.zeros(3))

    def test_current_step_resets_lazily(self):
        env = CartPoleEnvironment(batch_size=2)
        assert env.current_step().kind.tolist() == [F, F]
        assert env.current_step() is env.current_step()

    def test_step_rewards_one(self):
        env = CartPoleEnvironment(batch_size=2, seed=0)
        env.reset()
        step = env.step(torch.tensor([0, 1]))

        assert step.kind.tolist() == [T, T]
        assert torch.equal(step.reward, torch.ones(2))
        assert step.observation.shape == (2, 4)

    def test_actions_push_in_opposite_directions(self):
        left = CartPoleEnvironment(batch_size=1, seed=3)
        right = CartPoleEnvironment(batch_size=1, seed=3)
        left.reset()
        right.reset()

        left_step = left.step(torch.tensor([0]))
        right_step = right.step(torch.tensor([1]))

        assert left_step.observation[0, 1] < right_step.observation[0, 1]

    def test_invalid_action_raises(self):
        env = CartPoleEnvironment(batch_size=2)
        env.reset()
        with pytest.raises(ValueError, match="Invalid action provided."):
            env.step(torch.tensor([0, 2]))

    def test_episode_ends_then_restarts_per_slot(self):
        env = CartPoleEnvironment(batch_size=1, seed=0)
        env.reset()

        kinds = []
        for _ in range(200):
            step = env.step(torch.tensor([1]))
            kinds.append(step.kind.item())
            if kinds[-1] == L:
                break
        assert kinds[-1] == L
        assert step.observation[0, 2].abs() > ANGLE_THRESHOLD or step.observation[0, 0].abs() > 2.4

        restarted = env.step(torch.tensor([1]))
        assert restarted.kind.item() == F
        assert (restarted.observation.abs() <= 0.05).all()

    def test_seed_is_reproducible(self):
        first = CartPoleEnvironment(batch_size=4, seed=7).reset().observation
        second = CartPoleEnvironment(batch_size=4, seed=7).reset().observation
        assert torch.equal(first, second)

    def test_spaces(self):
        env = CartPoleEnvironment()
        assert env.action_space.n == 2
        assert env.observation_space.shape == (4,)
