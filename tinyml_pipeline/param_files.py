"""
param_files.py - Text parameter files.

For layer i there are two files, each holding one two's complement bit string
of the word width per line:

    weights_{i}.txt   row-major; each row ends with a delimiter line, the
                      reserved all-ones pattern (the last one is optional)
    biases_{i}.txt    one value per neuron

The layer count is found by probing weights_0.txt, weights_1.txt, ... until
one is missing. Dimensions come from the delimiters and the bias count.
"""
import logging
import os

import numpy as np

from tinyml_pipeline.errors import ConfigurationError
from tinyml_pipeline.fixed_point import FixedPointWord
from tinyml_pipeline.parameters import LayerParameters, NetworkParameters

log = logging.getLogger(__name__)

WEIGHTS_FILE = "weights_{}.txt"
BIASES_FILE = "biases_{}.txt"


def weights_path(directory, index):
    return os.path.join(directory, WEIGHTS_FILE.format(index))


def biases_path(directory, index):
    return os.path.join(directory, BIASES_FILE.format(index))


def count_layers(directory):
    count = 0
    while os.path.exists(weights_path(directory, count)):
        count += 1
    return count


def _read_lines(path, index):
    if not os.path.exists(path):
        raise ConfigurationError(f"missing parameter file {path}", layer=index)
    with open(path, "r") as f:
        lines = [(number, line.strip()) for number, line in enumerate(f, start=1)]
    lines = [(number, line) for number, line in lines if line]
    if not lines:
        raise ConfigurationError(f"parameter file {path} is empty", layer=index)
    return lines


def _parse(path, number, line, fmt, index):
    try:
        return FixedPointWord.from_bits(line, fmt).raw
    except ValueError as exc:
        raise ConfigurationError(f"{path}:{number}: {exc}", layer=index) from None


def read_weights(path, config, index=None):
    """Parse a weights file into an int64 (rows, cols) array of raw mantissas."""
    fmt = config.word_format
    delimiter = config.delimiter_bits
    rows, current = [], []
    for number, line in _read_lines(path, index):
        if line == delimiter:
            if not current:
                raise ConfigurationError(f"{path}:{number}: empty weight row", layer=index)
            rows.append(current)
            current = []
            continue
        current.append(_parse(path, number, line, fmt, index))
    if current:
        rows.append(current)
    if not rows:
        raise ConfigurationError(f"no weight rows found in {path}", layer=index)
    cols = len(rows[0])
    for row_index, row in enumerate(rows):
        if len(row) != cols:
            raise ConfigurationError(
                f"{path}: row {row_index} has {len(row)} columns, expected {cols}", layer=index)
    return np.array(rows, dtype=np.int64)


def read_biases(path, config, index=None):
    fmt = config.word_format
    delimiter = config.delimiter_bits
    values = []
    for number, line in _read_lines(path, index):
        if line == delimiter:
            raise ConfigurationError(f"{path}:{number}: delimiter found in bias file", layer=index)
        values.append(_parse(path, number, line, fmt, index))
    return np.array(values, dtype=np.int64)


def load_layer_parameters(directory, index, config):
    weights = read_weights(weights_path(directory, index), config, index)
    biases = read_biases(biases_path(directory, index), config, index)
    if len(biases) != weights.shape[0]:
        raise ConfigurationError(
            f"{biases_path(directory, index)} has {len(biases)} biases for {weights.shape[0]} neurons",
            layer=index)
    return LayerParameters(weights, biases, config.word_format)


def load_network_parameters(directory, config):
    count = count_layers(directory)
    if count == 0:
        raise ConfigurationError(f"no {WEIGHTS_FILE.format(0)} found in {directory}")
    layers = [load_layer_parameters(directory, index, config) for index in range(count)]
    parameters = NetworkParameters(layers)
    log.info(f"Loaded {count} layer(s) from {directory}: dims={parameters.layer_dims}")
    return parameters


def _bits(raw, fmt, delimiter, path):
    bits = FixedPointWord(int(raw), fmt).to_bits()
    if bits == delimiter:
        raise ValueError(f"value {raw} in {path} collides with the reserved delimiter pattern")
    return bits


def save_network_parameters(parameters, directory, config):
    """Write weights_{i}.txt / biases_{i}.txt for every layer. Returns the paths written."""
    fmt = config.word_format
    if parameters.fmt != fmt:
        raise ConfigurationError(f"parameters use {parameters.fmt}, config expects {fmt}")
    delimiter = config.delimiter_bits
    os.makedirs(directory, exist_ok=True)
    written = []
    for index, layer in enumerate(parameters):
        w_path = weights_path(directory, index)
        with open(w_path, "w") as f:
            for row in layer.weights:
                for raw in row:
                    f.write(_bits(raw, fmt, delimiter, w_path) + "\n")
                f.write(delimiter + "\n")
        b_path = biases_path(directory, index)
        with open(b_path, "w") as f:
            for raw in layer.biases:
                f.write(_bits(raw, fmt, delimiter, b_path) + "\n")
        written.extend([w_path, b_path])
    # a stale weights file after the last layer would be picked up by probing
    stale = weights_path(directory, len(parameters))
    if os.path.exists(stale):
        log.warning(f"{stale} exists and will be read as an extra layer")
    return written


def read_input_vector(path, config):
    """Read an input vector: one bit string or decimal number per line."""
    values = []
    with open(path, "r") as f:
        for number, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if len(line) == config.word_width and set(line) <= {"0", "1"}:
                values.append(FixedPointWord.from_bits(line, config.word_format))
            else:
                try:
                    values.append(FixedPointWord.from_float(float(line), config.word_format,
                                                            config.rounding, config.overflow))
                except ValueError:
                    raise ValueError(f"{path}:{number}: cannot parse {line!r}") from None
    return values
