"""
Training Script for Policy Gradient Agents on CartPole

This script trains a REINFORCE, A2C or PPO agent on the batched CartPole
environment. Each iteration follows the shared policy gradient loop:

1. Collect a rollout with the current stochastic policy
2. Compute returns / advantages
3. Update the network (one step for REINFORCE/A2C, K epochs for PPO)
4. Repeat for total_updates iterations

Usage:
    # Train PPO with default config
    python train_cartpole.py

    # Train another agent
    python train_cartpole.py --configs reinforce
    python train_cartpole.py --configs a2c

    # Quick smoke run
    python train_cartpole.py --configs ppo debug

    # Override any config key
    python train_cartpole.py --configs a2c --learning_rate 0.001
"""

import argparse
import pathlib
import sys
import time
from typing import Any, List

import numpy as np
from ruamel.yaml import YAML
from torch.utils.tensorboard import SummaryWriter

from envs.cartpole import CartPoleEnvironment
from envs.wrappers import RunStatistics, TimeLimit
from policy_gradient import schedules, tools
from policy_gradient.a2c_agent import A2CAgent
from policy_gradient.networks import ActorCriticNetwork, PolicyNetwork
from policy_gradient.ppo_agent import PPOAgent, PPOClip, PPOEntropyRegularization, PPOPenalty
from policy_gradient.reinforce_agent import ReinforceAgent
from policy_gradient.trajectory import Trajectory, is_last
from policy_gradient.values import EmpiricalAdvantageEstimation, GeneralizedAdvantageEstimation


class EpisodeReturnTracker:
    """
    Step callback accumulating per-slot rewards into episode returns

    Completed episode returns are collected in `completed` until drained.
    """

    def __init__(self, batch_size: int):
        self._running = np.zeros(batch_size)
        self.completed: List[float] = []

    def __call__(self, entry: Trajectory):
        rewards = tools.to_np(entry.reward).reshape(-1)
        done = tools.to_np(is_last(entry.step_kind)).reshape(-1)
        self._running += rewards
        self.completed.extend(self._running[done].tolist())
        self._running[done] = 0.0

    def drain(self) -> List[float]:
        completed, self.completed = self.completed, []
        return completed


def make_schedule(config: Any) -> schedules.LearningRateSchedule:
    if config.lr_decay == 'none':
        return schedules.FixedLearningRate()
    if config.lr_decay == 'linear':
        return schedules.LinearLearningRateDecay(
            slope=-config.learning_rate / config.lr_decay_steps,
            lower_bound=0.1
        )
    if config.lr_decay == 'exponential':
        return schedules.ExponentialLearningRateDecay(
            decay_rate=0.1, decay_steps=config.lr_decay_steps, lower_bound=0.01
        )
    if config.lr_decay == 'cosine':
        return schedules.CosineLearningRateDecay(
            cycle_step_count=config.lr_decay_steps, lower_bound=0.01
        )
    raise ValueError(f"Unknown learning rate decay '{config.lr_decay}'")


def make_advantage_function(config: Any):
    if config.advantage == 'gae':
        return GeneralizedAdvantageEstimation(
            discount_factor=config.discount_factor,
            discount_weight=config.gae_lambda
        )
    if config.advantage == 'empirical':
        return EmpiricalAdvantageEstimation(discount_factor=config.discount_factor)
    raise ValueError(f"Unknown advantage function '{config.advantage}'")


def make_agent(config: Any, env, input_dim: int):
    """
    Build the network, optimizer and agent selected by config.agent
    """
    num_actions = env.action_space.n
    hidden_sizes = tuple(config.hidden_sizes)

    if config.agent == 'reinforce':
        network = PolicyNetwork(input_dim, num_actions, hidden_sizes)
    else:
        network = ActorCriticNetwork(input_dim, num_actions, hidden_sizes)

    optimizer = tools.Optimizer(
        name=config.agent,
        parameters=network.parameters(),
        lr=config.learning_rate,
        clip=config.grad_clip or None,
        opt=config.optimizer,
        schedule=make_schedule(config)
    )

    if config.agent == 'reinforce':
        return ReinforceAgent(
            env, network, optimizer,
            discount_factor=config.discount_factor,
            normalize_returns=config.normalize,
            entropy_regularization_weight=config.entropy_weight
        )
    if config.agent == 'a2c':
        return A2CAgent(
            env, network, optimizer,
            advantage_function=make_advantage_function(config),
            normalize_advantages=config.normalize,
            value_estimation_loss_weight=config.value_loss_weight,
            entropy_regularization_weight=config.entropy_weight
        )
    if config.agent == 'ppo':
        penalty = None
        if config.kl_penalty:
            penalty = PPOPenalty(
                adaptive_kl_target=config.kl_target,
                adaptive_kl_beta=config.adaptive_kl_beta or None
            )
        entropy = None
        if config.entropy_weight > 0:
            entropy = PPOEntropyRegularization(weight=config.entropy_weight)
        return PPOAgent(
            env, network, optimizer,
            clip=PPOClip(epsilon=config.clip_epsilon) if config.clip_epsilon > 0 else None,
            penalty=penalty,
            entropy_regularization=entropy,
            advantage_function=make_advantage_function(config),
            normalize_advantages=config.normalize,
            use_td_lambda_return=config.use_td_lambda_return,
            value_estimation_loss_weight=config.value_loss_weight,
            epoch_count=config.epoch_count
        )
    raise ValueError(f"Unknown agent '{config.agent}'")


def main(config):
    """
    Main training loop

    Args:
        config: Configuration object
    """
    tools.seed_everything(config.seed)

    logdir = pathlib.Path(config.logdir).expanduser()
    logdir.mkdir(parents=True, exist_ok=True)

    print("=" * 80)
    print(f"Policy Gradient Training: CartPole ({config.agent.upper()})")
    print("=" * 80)
    print(f"Logdir: {logdir}")
    print(f"Parallel Envs: {config.num_envs}")
    print(f"Updates: {config.total_updates}")
    print("=" * 80)

    writer = SummaryWriter(log_dir=str(logdir))
    tools.save_config(config, logdir)

    cartpole = CartPoleEnvironment(batch_size=config.num_envs, seed=config.seed)
    env = RunStatistics(TimeLimit(cartpole, limit=config.time_limit))
    agent = make_agent(config, env, cartpole.observation_space.shape[0])
    tracker = EpisodeReturnTracker(config.num_envs)
    should_log = tools.Every(config.log_every)

    max_steps = config.max_steps or sys.maxsize
    max_episodes = config.max_episodes or sys.maxsize

    print("\nStarting training...")
    start_time = time.time()
    recent_returns: List[float] = []
    for update in range(1, config.total_updates + 1):
        loss = agent.collect_and_update(
            env,
            max_steps=max_steps,
            max_episodes=max_episodes,
            step_callbacks=[tracker]
        )
        recent_returns = (recent_returns + tracker.drain())[-100:]

        if should_log(update):
            elapsed_time = time.time() - start_time
            fps = env.num_total_steps / max(elapsed_time, 1e-8)
            mean_return = float(np.mean(recent_returns)) if recent_returns else 0.0

            print(f"\n[Update {update}/{config.total_updates}]")
            print(f"  Loss: {loss:.4f}")
            print(f"  Episodes: {env.num_episodes}")
            print(f"  Mean Return (last 100): {mean_return:.2f}")
            print(f"  FPS: {fps:.0f}")

            writer.add_scalar('train/loss', loss, update)
            writer.add_scalar('train/episode_return', mean_return, update)
            writer.add_scalar('train/episodes', env.num_episodes, update)
            writer.add_scalar('train/fps', fps, update)
            writer.add_scalar('train/learning_rate', agent.optimizer.learning_rate, update)
            if isinstance(agent, PPOAgent) and agent.penalty is not None:
                if agent.penalty.adaptive_kl_beta is not None:
                    writer.add_scalar('train/kl_beta', agent.penalty.adaptive_kl_beta, update)

    print(f"\n✓ Training complete!")
    env.close()
    writer.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Train policy gradient agents on CartPole")
    parser.add_argument("--configs", nargs="+", default=["defaults"])
    parser.add_argument("--logdir", type=str, default=None)
    args, remaining = parser.parse_known_args()

    config_file = pathlib.Path(__file__).parent / "configs" / "pg_configs.yaml"
    yaml = YAML(typ='safe', pure=True)
    configs = yaml.load(config_file)

    if 'defaults' not in configs:
        raise ValueError("'defaults' config not found in pg_configs.yaml")

    config_dict = dict(configs['defaults'])
    for name in args.configs:
        if name == 'defaults':
            continue
        if name not in configs:
            raise ValueError(f"Config '{name}' not found in pg_configs.yaml")
        config_dict.update(configs[name])

    # Override with command-line arguments
    parser = argparse.ArgumentParser()
    for key, value in sorted(config_dict.items(), key=lambda x: x[0]):
        arg_type = tools.config_value_parser(value)
        parser.add_argument(f"--{key}", type=arg_type, default=arg_type(value))

    config = parser.parse_args(remaining)

    if args.logdir:
        config.logdir = args.logdir

    main(config)
