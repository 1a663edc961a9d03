"""
Activation function tests
=========================
Three-region piecewise-linear sigmoid: saturated ends at the boundaries and
the linear segment within one unit in the last place of 0.1875 * x + 0.5.
"""
import logging

import numpy as np
import pytest

from tinyml_pipeline import PipelineConfig, SigmoidApproximation
from tinyml_pipeline.fixed_point import FixedPointWord

from utils.pipeline_tester import small_config


@pytest.fixture
def config():
    return small_config()


@pytest.fixture
def activation(config):
    return SigmoidApproximation(config)


def acc(value, config):
    return FixedPointWord.from_float(value, config.accumulator_format)


def test_constants_are_exact_for_default_widths(activation):
    assert activation.lower_bound.to_float() == -2.0625
    assert activation.upper_bound.to_float() == 2.0625
    assert activation.low_value.to_float() == 0.0625
    assert activation.high_value.to_float() == 0.9375
    assert activation.slope.to_float() == 0.1875
    assert activation.intercept.to_float() == 0.5


def test_output_format_is_unsigned_fraction(activation, config):
    out = activation(acc(0.0, config))
    assert out.fmt == config.activation_format
    assert not out.fmt.signed
    assert out.to_float() == 0.5


@pytest.mark.parametrize("x", [-2.0625, -2.07, -3.0, -100.0])
def test_low_region(activation, config, x):
    assert activation(acc(x, config)) == activation.low_value


@pytest.mark.parametrize("x", [2.0625, 2.07, 3.0, 100.0])
def test_high_region(activation, config, x):
    assert activation(acc(x, config)) == activation.high_value


@pytest.mark.parametrize("x, expected", [
    (0.5, 0.59375),
    (2.0, 0.875),
    (-2.0, 0.125),
    (1.0, 0.6875),
])
def test_linear_region_exact_points(activation, config, x, expected):
    assert activation(acc(x, config)).to_float() == expected


def test_linear_region_within_one_ulp(activation, config):
    ulp = config.activation_format.resolution
    step = 1.0 / 64
    for x in np.arange(-2.0625 + step, 2.0625, step):
        got = activation(acc(x, config)).to_float()
        expected = 0.1875 * x + 0.5
        assert 0.0 <= expected - got < ulp, f"x={x}: got {got}, expected {expected}"


def test_activation_accepts_narrow_inputs(activation, config):
    word = FixedPointWord.from_float(1.0, config.word_format)
    assert activation(word).to_float() == 0.6875


def test_unrepresentable_constants_warn(caplog):
    config = PipelineConfig(integral_bits=4, fractional_bits=2)
    with caplog.at_level(logging.WARNING, logger="tinyml_pipeline.activation"):
        activation = SigmoidApproximation(config)
    assert "not representable" in caplog.text
    assert activation.low_value.to_float() == 0.0
    assert activation.high_value.to_float() == 0.75
