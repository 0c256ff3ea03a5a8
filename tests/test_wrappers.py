"""Tests for the environment wrappers."""

import pytest
import torch

from envs.wrappers import ActionRepeat, RunStatistics, TimeLimit
from helpers import CountdownEnvironment, ScriptedEnvironment
from policy_gradient.trajectory import StepKind

F, T, L = int(StepKind.FIRST), int(StepKind.TRANSITION), int(StepKind.LAST)

ONES = torch.ones(2, dtype=torch.long)


class TestTimeLimit:

    def test_forces_last_at_limit_then_resets(self):
        env = TimeLimit(CountdownEnvironment(horizon=10, batch_size=2), limit=2)
        env.reset()

        assert env.step(ONES).kind.tolist() == [T, T]
        assert env.step(ONES).kind.tolist() == [L, L]

        restarted = env.step(ONES)
        assert restarted.kind.tolist() == [F, F]
        assert restarted.observation[:, 0].tolist() == [1.0, 1.0]

    def test_counter_restarts_with_natural_episode_end(self):
        env = TimeLimit(CountdownEnvironment(horizon=2, batch_size=1), limit=3)
        env.reset()

        kinds = [env.step(ONES[:1]).kind.item() for _ in range(4)]
        assert kinds == [T, L, F, T]

    def test_restarted_slot_keeps_first_at_limit(self):
        # Slot 0 ends on its own and restarts exactly when the limit is hit.
        inner = ScriptedEnvironment([[T, T], [L, T], [F, T]])
        env = RunStatistics(TimeLimit(inner, limit=3))
        env.reset()

        kinds = [env.step(ONES).kind.tolist() for _ in range(4)]

        assert kinds == [[T, T], [L, T], [F, L], [F, F]]
        assert env.num_episodes == 2

    def test_delegates_action_space(self):
        inner = CountdownEnvironment()
        env = TimeLimit(inner, limit=5)
        assert env.action_space is inner.action_space
        assert env.wrapped_environment is inner
        assert env.batch_size == inner.batch_size


class TestActionRepeat:

    def test_sums_rewards_over_repeats(self):
        env = ActionRepeat(CountdownEnvironment(horizon=3, batch_size=2), num_repeats=2)
        env.reset()

        step = env.step(ONES)
        assert step.kind.tolist() == [T, T]
        assert step.reward.tolist() == [2.0, 2.0]
        assert step.observation[:, 2].tolist() == [1.0, 1.0]

    def test_stops_repeating_at_episode_end(self):
        env = ActionRepeat(CountdownEnvironment(horizon=3, batch_size=2), num_repeats=2)
        env.reset()
        env.step(ONES)

        step = env.step(ONES)
        assert step.kind.tolist() == [L, L]
        assert step.reward.tolist() == [1.0, 1.0]

    @pytest.mark.parametrize("num_repeats", [1, 0, -2])
    def test_requires_more_than_one_repeat(self, num_repeats):
        with pytest.raises(ValueError):
            ActionRepeat(CountdownEnvironment(), num_repeats=num_repeats)


class TestRunStatistics:

    def test_counts_steps_episodes_and_resets(self):
        env = RunStatistics(CountdownEnvironment(horizon=3, batch_size=2))
        env.reset()
        assert env.num_resets == 2

        for _ in range(3):
            env.step(ONES)
        assert env.num_episodes == 2
        assert env.num_total_steps == 6
        assert env.num_episode_steps.tolist() == [3, 3]

        env.step(ONES)
        assert env.num_resets == 4
        assert env.num_total_steps == 6
        assert env.num_episode_steps.tolist() == [0, 0]

    def test_counts_through_time_limit(self):
        env = RunStatistics(TimeLimit(CountdownEnvironment(horizon=10, batch_size=2), limit=1))
        env.reset()

        env.step(ONES)
        env.step(ONES)

        assert env.num_episodes == 2
        assert env.num_resets == 4
        assert env.num_total_steps == 2
