""" activation.py - Three-region piecewise-linear sigmoid approximation.

    x <= -2.0625  ->  0.0625
    x >= +2.0625  ->  0.9375
    otherwise     ->  resize(0.1875 * x + 0.5)

The saturated ends are 0.0625 and 0.9375, never exactly 0 or 1. Constants are
quantized into the configured formats once, at construction.
"""
import logging

from tinyml_pipeline.fixed_point import FixedPointWord

log = logging.getLogger(__name__)

LOWER_BOUND = -2.0625
UPPER_BOUND = 2.0625
LOW_VALUE = 0.0625
HIGH_VALUE = 0.9375
SLOPE = 0.1875
INTERCEPT = 0.5


def _quantize_constant(name, value, fmt, config):
    word = FixedPointWord.from_float(value, fmt, config.rounding, config.overflow)
    if word.to_float() != value:
        log.warning(f"Activation constant {name}={value} is not representable in {fmt}, "
                    f"using {word.to_float()}")
    return word


class SigmoidApproximation:
    def __init__(self, config):
        self.rounding = config.rounding
        self.overflow = config.overflow
        self.input_format = config.accumulator_format
        self.output_format = config.activation_format

        self.lower_bound = _quantize_constant("lower_bound", LOWER_BOUND, self.input_format, config)
        self.upper_bound = _quantize_constant("upper_bound", UPPER_BOUND, self.input_format, config)
        self.low_value = _quantize_constant("low_value", LOW_VALUE, self.output_format, config)
        self.high_value = _quantize_constant("high_value", HIGH_VALUE, self.output_format, config)
        self.slope = _quantize_constant("slope", SLOPE, config.word_format, config)
        self.intercept = _quantize_constant("intercept", INTERCEPT, config.word_format, config)

    def linear(self, x):
        """The middle segment, evaluated at full precision then resized."""
        return (self.slope * x + self.intercept).resize(self.output_format, self.rounding, self.overflow)

    def __call__(self, x):
        x = x.resize(self.input_format, self.rounding, self.overflow)
        if x <= self.lower_bound:
            return self.low_value
        if x >= self.upper_bound:
            return self.high_value
        return self.linear(x)
