"""
Learning Rate Schedules

A schedule maps (step, base learning rate) to the learning rate used at that
step. Schedules are applied by tools.Optimizer before every parameter update.
Decay schedules share two options:
- lower_bound: minimum learning rate as a fraction of the base learning rate
- start_step: step after which decaying starts
"""

import math


class LearningRateSchedule:
    """Base class of learning rate schedules"""

    def __call__(self, step: int, learning_rate: float) -> float:
        raise NotImplementedError

    def composed(self, other: 'LearningRateSchedule') -> 'ComposedLearningRateSchedule':
        """Schedule applying `other` first and then this schedule"""
        return ComposedLearningRateSchedule(self, other)


class ComposedLearningRateSchedule(LearningRateSchedule):
    def __init__(self, schedule1: LearningRateSchedule, schedule2: LearningRateSchedule):
        self.schedule1 = schedule1
        self.schedule2 = schedule2

    def __call__(self, step, learning_rate):
        return self.schedule1(step, self.schedule2(step, learning_rate))


class FixedLearningRate(LearningRateSchedule):
    """No schedule: the base learning rate is used at every step"""

    def __call__(self, step, learning_rate):
        return learning_rate


class LinearLearningRateDecay(LearningRateSchedule):
    """
    Linear decay

        decayed = learningRate + step * slope
        decayedLearningRate = max(lowerBound * learningRate, decayed)
    """

    def __init__(self, slope: float, lower_bound: float = 0.0, start_step: int = 0):
        self.slope = slope
        self.lower_bound = lower_bound
        self.start_step = start_step

    def __call__(self, step, learning_rate):
        if step < self.start_step:
            return learning_rate
        step -= self.start_step
        decayed = learning_rate + step * self.slope
        return max(self.lower_bound * learning_rate, decayed)


class ExponentialLearningRateDecay(LearningRateSchedule):
    """
    Exponential decay

        decay = decayRate ^ (step / decaySteps)
        decayedLearningRate = learningRate * ((1 - lowerBound) * decay + lowerBound)

    With staircase=True, step / decaySteps uses integer division.
    """

    def __init__(
        self,
        decay_rate: float,
        decay_steps: int,
        staircase: bool = False,
        lower_bound: float = 0.0,
        start_step: int = 0
    ):
        self.decay_rate = decay_rate
        self.decay_steps = decay_steps
        self.staircase = staircase
        self.lower_bound = lower_bound
        self.start_step = start_step

    def __call__(self, step, learning_rate):
        if step < self.start_step:
            return learning_rate
        step -= self.start_step
        power = step / self.decay_steps
        if self.staircase:
            power = math.floor(power)
        decay = self.decay_rate ** power
        return learning_rate * ((1 - self.lower_bound) * decay + self.lower_bound)


class RSqrtLearningRateDecay(LearningRateSchedule):
    """
    Reciprocal square root decay

        decay = decayFactor / sqrt(max(step, decayThreshold))
    """

    def __init__(
        self,
        decay_factor: float,
        decay_threshold: float,
        lower_bound: float = 0.0,
        start_step: int = 0
    ):
        self.decay_factor = decay_factor
        self.decay_threshold = decay_threshold
        self.lower_bound = lower_bound
        self.start_step = start_step

    def __call__(self, step, learning_rate):
        if step < self.start_step:
            return learning_rate
        step -= self.start_step
        decay = self.decay_factor / math.sqrt(max(step, self.decay_threshold))
        return learning_rate * ((1 - self.lower_bound) * decay + self.lower_bound)


class CosineLearningRateDecay(LearningRateSchedule):
    """
    Cosine decay over one cycle, flat afterwards

        decay = 0.5 * (1 + cos(pi * min(step, cycleStepCount) / cycleStepCount))
    """

    def __init__(self, cycle_step_count: int, lower_bound: float = 0.0, start_step: int = 0):
        self.cycle_step_count = cycle_step_count
        self.lower_bound = lower_bound
        self.start_step = start_step

    def __call__(self, step, learning_rate):
        if step < self.start_step:
            return learning_rate
        step -= self.start_step
        progress = min(step, self.cycle_step_count) / self.cycle_step_count
        decay = 0.5 * (1 + math.cos(math.pi * progress))
        return learning_rate * ((1 - self.lower_bound) * decay + self.lower_bound)


class CycleLinear10xLearningRateDecay(LearningRateSchedule):
    """
    Triangular cycle between 0.3x and 3.3x the base learning rate

        cyclePosition = 1 - abs((step % (2 * cycleStepCount) - cycleStepCount) / cycleStepCount)
        decay = (0.1 + cyclePosition) * 3
    """

    def __init__(self, cycle_step_count: int, lower_bound: float = 0.0, start_step: int = 0):
        self.cycle_step_count = cycle_step_count
        self.lower_bound = lower_bound
        self.start_step = start_step

    def __call__(self, step, learning_rate):
        if step < self.start_step:
            return learning_rate
        step -= self.start_step
        cycle = self.cycle_step_count
        ratio = (step % (2 * cycle) - cycle) / cycle
        cycle_position = 1 - abs(ratio)
        decay = (0.1 + cycle_position) * 3
        return learning_rate * ((1 - self.lower_bound) * decay + self.lower_bound)
