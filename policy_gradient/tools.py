"""
Training Helpers

- Optimizer: the gradient and parameter-update collaborator handed to agents
- seed_everything: seeds torch, numpy and random
- Every: periodic trigger for logging
- config_value_parser / save_config: YAML config plumbing for scripts
"""

import pathlib
import random
from typing import Any, Callable, Dict, Optional

import numpy as np
import torch
from ruamel.yaml import YAML

from policy_gradient.schedules import FixedLearningRate, LearningRateSchedule

TORCH_OPTIMIZERS = {
    "adam": lambda params, lr, eps: torch.optim.Adam(params, lr=lr, eps=eps),
    "adamax": lambda params, lr, eps: torch.optim.Adamax(params, lr=lr, eps=eps),
    "sgd": lambda params, lr, eps: torch.optim.SGD(params, lr=lr),
    "momentum": lambda params, lr, eps: torch.optim.SGD(params, lr=lr, momentum=0.9),
}


def to_np(x: torch.Tensor) -> np.ndarray:
    """Detached CPU numpy copy of a tensor"""
    return x.detach().cpu().numpy()


class Optimizer:
    """
    Turns a scalar loss into an in-place parameter update

    Each call runs: zero_grad -> backward -> optional grad-norm clipping ->
    optional weight decay -> optimizer step -> learning rate scheduler step.
    The schedule is driven by a torch LambdaLR scheduler.
    The wrapped torch optimizer (and e.g. its Adam moments) lives as long as
    this object, so state carries over between agent updates.
    """

    def __init__(
        self,
        name: str,
        parameters,
        lr: float,
        eps: float = 1e-5,
        clip: Optional[float] = None,
        wd: Optional[float] = None,
        opt: str = "adam",
        schedule: Optional[LearningRateSchedule] = None
    ):
        """
        Args:
            name: Prefix of the returned metric names
            parameters: Parameters to update
            lr: Base learning rate, fed through the schedule
            eps: Adam/Adamax epsilon
            clip: Max gradient norm, or None
            wd: Decoupled weight decay factor in [0, 1), or None
            opt: One of "adam", "adamax", "sgd", "momentum"
            schedule: Learning rate schedule (fixed when None)
        """
        if opt not in TORCH_OPTIMIZERS:
            raise ValueError(f"Unknown optimizer '{opt}'")
        assert wd is None or 0 <= wd < 1
        assert not clip or clip > 0

        self.name = name
        self.base_learning_rate = lr
        self.max_grad_norm = clip
        self.weight_decay = wd
        self.schedule = schedule or FixedLearningRate()
        self.step_count = 0
        self._parameters = list(parameters)
        self._torch_optimizer = TORCH_OPTIMIZERS[opt](self._parameters, lr, eps)
        self._lr_scheduler = torch.optim.lr_scheduler.LambdaLR(
            self._torch_optimizer, lr_lambda=self._lr_factor
        )

    def _lr_factor(self, step: int) -> float:
        # LambdaLR scales the base learning rate by this factor.
        if not self.base_learning_rate:
            return 1.0
        return self.schedule(step, self.base_learning_rate) / self.base_learning_rate

    @property
    def learning_rate(self) -> float:
        """Learning rate the next call will use"""
        return self._lr_scheduler.get_last_lr()[0]

    def __call__(self, loss: torch.Tensor) -> Dict[str, float]:
        assert loss.dim() == 0, f"Loss must be scalar, got shape {tuple(loss.shape)}"
        metrics = {f"{self.name}_loss": loss.item()}

        self._torch_optimizer.zero_grad()
        loss.backward()

        if self.max_grad_norm:
            grad_norm = torch.nn.utils.clip_grad_norm_(self._parameters, self.max_grad_norm)
            metrics[f"{self.name}_grad_norm"] = grad_norm.item()

        if self.weight_decay:
            with torch.no_grad():
                for parameter in self._parameters:
                    parameter.mul_(1 - self.weight_decay)

        metrics[f"{self.name}_lr"] = self.learning_rate

        self._torch_optimizer.step()
        self._lr_scheduler.step()
        self._torch_optimizer.zero_grad()
        self.step_count += 1
        return metrics


def seed_everything(seed: int):
    """Seed torch (CPU and CUDA), numpy and random"""
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    if torch.cuda.is_available():
        torch.cuda.manual_seed_all(seed)


class Every:
    """
    Fires on the first call and then once per `period` steps

    A period of 0 never fires.
    """

    def __init__(self, period: int):
        self.period = period
        self._next = None

    def __call__(self, step: int) -> bool:
        if not self.period:
            return False
        if self._next is None or step >= self._next:
            self._next = step + self.period
            return True
        return False


def config_value_parser(default: Any) -> Callable:
    """
    argparse `type` for a config key, inferred from its default value

    Strings from the command line are converted to the default's type;
    lists are given comma-separated. Non-string values (the YAML defaults
    themselves) pass through, with lists turned into tuples.
    """
    if isinstance(default, (list, tuple)):
        element = config_value_parser(default[0]) if default else str
        return lambda x: tuple(
            element(y) for y in (x.split(",") if isinstance(x, str) else x)
        )

    def parse(x):
        if not isinstance(x, str) or default is None:
            return x
        if isinstance(default, bool):
            return {"True": True, "False": False}[x]
        if isinstance(default, int):
            return float(x) if ("e" in x or "." in x) else int(x)
        return type(default)(x)

    return parse


def _yaml_friendly(value):
    if isinstance(value, (list, tuple)):
        return [_yaml_friendly(v) for v in value]
    if isinstance(value, dict):
        return {k: _yaml_friendly(v) for k, v in value.items()}
    return value


def save_config(config: Any, logdir: pathlib.Path, verbose: bool = True) -> pathlib.Path:
    """Write the public attributes of `config` to <logdir>/config.yaml"""
    path = pathlib.Path(logdir) / "config.yaml"
    values = {
        key: _yaml_friendly(value)
        for key, value in vars(config).items()
        if not key.startswith('_')
    }
    yaml = YAML()
    yaml.default_flow_style = False
    with path.open('w') as f:
        yaml.dump(values, f)
    if verbose:
        print(f"Saved config to {path}")
    return path
