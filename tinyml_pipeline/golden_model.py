"""
Golden model of the pipeline.
Computes the same bit-exact results as the clocked Network without any timing:
same word formats, same batch order of accumulation, same saturation points.
"""
import numpy as np

from tinyml_pipeline.activation import (
    HIGH_VALUE, INTERCEPT, LOW_VALUE, LOWER_BOUND, SLOPE, UPPER_BOUND, SigmoidApproximation,
)
from tinyml_pipeline.fixed_point import FixedPointWord
from tinyml_pipeline.neuron import to_word


def batched_dot(inputs, weights, bias, config, batch_size=None):
    """Bias-seeded accumulator after all batches, before activation."""
    batch_size = batch_size or config.batch_size
    acc_fmt = config.accumulator_format
    rounding, overflow = config.rounding, config.overflow
    acc = to_word(bias, config).resize(acc_fmt, rounding, overflow)
    for start in range(0, len(weights), batch_size):
        partial = FixedPointWord.zero(acc_fmt)
        for x, w in zip(inputs[start:start + batch_size], weights[start:start + batch_size]):
            partial = (partial + to_word(x, config) * to_word(w, config)).resize(acc_fmt, rounding, overflow)
        acc = (acc + partial).resize(acc_fmt, rounding, overflow)
    return acc


def layer_forward(layer, inputs, config, batch_size=None, activation=None):
    activation = activation or SigmoidApproximation(config)
    return [activation(batched_dot(inputs, layer.weight_vector(row), layer.bias(row), config, batch_size))
            for row in range(layer.rows)]


def network_forward(parameters, inputs, config, batch_size=None, return_all=False):
    """Run every layer in turn. With return_all, returns the per-layer outputs."""
    activation = SigmoidApproximation(config)
    outputs = []
    vector = list(inputs)
    for layer in parameters:
        vector = layer_forward(layer, vector, config, batch_size, activation)
        outputs.append(vector)
    return outputs if return_all else vector


def classify(outputs):
    """Arg-max over an output vector (first index wins ties)."""
    return int(np.argmax([word.raw for word in outputs]))


def float_reference(parameters, inputs):
    """Unquantized numpy forward pass with the same sigmoid approximation, for error reports."""
    fmt = parameters.fmt
    scale = float(1 << fmt.fractional_bits)
    vector = np.array([float(x) for x in inputs], dtype=np.float64)
    for layer in parameters:
        z = layer.weights.astype(np.float64) / scale @ vector + layer.biases.astype(np.float64) / scale
        vector = np.where(z <= LOWER_BOUND, LOW_VALUE,
                          np.where(z >= UPPER_BOUND, HIGH_VALUE, SLOPE * z + INTERCEPT))
    return vector
