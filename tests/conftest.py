import pytest
import torch

from helpers import CountdownEnvironment


@pytest.fixture(autouse=True)
def _seed():
    torch.manual_seed(0)


@pytest.fixture
def countdown_env():
    return CountdownEnvironment(horizon=3, batch_size=2)
