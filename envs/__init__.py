from envs.environment import Environment
from envs.cartpole import CartPoleEnvironment
from envs.wrappers import ActionRepeat, RunStatistics, TimeLimit, Wrapper

__all__ = [
    'Environment', 'CartPoleEnvironment',
    'ActionRepeat', 'RunStatistics', 'TimeLimit', 'Wrapper',
]
