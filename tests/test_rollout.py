"""Tests for the shared rollout loop of policy gradient agents."""

import pytest
import torch

from helpers import LinearPolicy, RecordingOptimizer
from policy_gradient.reinforce_agent import ReinforceAgent
from policy_gradient.trajectory import StepKind

F, T, L = int(StepKind.FIRST), int(StepKind.TRANSITION), int(StepKind.LAST)


@pytest.fixture
def agent(countdown_env):
    return ReinforceAgent(
        countdown_env,
        LinearPolicy(input_dim=4),
        RecordingOptimizer(),
        discount_factor=1.0
    )


class TestCollectTrajectory:

    def test_max_steps_counts_non_last_slots(self, agent, countdown_env):
        # Two slots: T,T add 2 steps each, the LAST row adds none, FIRST adds 2.
        trajectory = agent.collect_trajectory(countdown_env, max_steps=5)

        assert len(trajectory) == 4
        assert trajectory.step_kind[:, 0].tolist() == [T, T, L, F]
        assert trajectory.observation.shape == (4, 2, 4)

    def test_max_episodes_counts_last_slots(self, agent, countdown_env):
        trajectory = agent.collect_trajectory(countdown_env, max_episodes=1)

        assert len(trajectory) == 3
        assert trajectory.step_kind[-1].tolist() == [L, L]

    def test_observation_precedes_reward(self, agent, countdown_env):
        trajectory = agent.collect_trajectory(countdown_env, max_episodes=2)

        # Observations are the pre-action positions 0, 1, 2.
        positions = trajectory.observation[:, 0].argmax(dim=-1)
        assert positions.tolist() == [0, 1, 2]
        assert torch.equal(trajectory.reward, trajectory.action.float())

    def test_continues_from_current_step(self, agent, countdown_env):
        agent.collect_trajectory(countdown_env, max_steps=3)
        trajectory = agent.collect_trajectory(countdown_env, max_steps=1)

        # The first rollout stopped after two steps; the next starts at position 2.
        assert trajectory.observation[0, 0].argmax().item() == 2

    def test_step_callbacks_run_in_order(self, agent, countdown_env):
        calls = []
        trajectory = agent.collect_trajectory(
            countdown_env,
            max_episodes=1,
            step_callbacks=[
                lambda entry: calls.append(('first', entry.step_kind[0].item())),
                lambda entry: calls.append(('second', entry.step_kind[0].item())),
            ]
        )

        assert len(trajectory) == 3
        assert calls == [
            ('first', T), ('second', T),
            ('first', T), ('second', T),
            ('first', L), ('second', L),
        ]

    def test_callback_exceptions_propagate(self, agent, countdown_env):
        def failing(entry):
            raise KeyError("callback failure")

        with pytest.raises(KeyError):
            agent.collect_trajectory(countdown_env, max_steps=2, step_callbacks=[failing])

    def test_records_initial_state(self, agent, countdown_env):
        agent.state = "initial"
        trajectory = agent.collect_trajectory(countdown_env, max_steps=2)
        assert trajectory.state == "initial"

    def test_zero_bounds_collect_nothing(self, agent, countdown_env):
        with pytest.raises(ValueError):
            agent.collect_trajectory(countdown_env, max_steps=0)


class TestAction:

    def test_deterministic_action_is_argmax(self, agent, countdown_env):
        step = countdown_env.current_step()
        distribution = agent.action_distribution(step)
        action = agent.action(step, deterministic=True)
        assert torch.equal(action, distribution.probs.argmax(dim=-1))

    def test_sampled_actions_are_in_action_space(self, agent, countdown_env):
        step = countdown_env.current_step()
        for _ in range(10):
            action = agent.action(step)
            assert all(agent.action_space.contains(int(a)) for a in action)


class TestCollectAndUpdate:

    def test_updates_once_per_call(self, agent, countdown_env):
        loss = agent.collect_and_update(countdown_env, max_episodes=2)

        assert len(agent.optimizer.losses) == 1
        assert loss == pytest.approx(agent.optimizer.losses[0].item())
