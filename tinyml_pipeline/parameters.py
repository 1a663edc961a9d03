"""
Topology / Parameter Model
==========================
Static per-layer weights and biases, stored as read-only numpy int64 arrays of
raw word-format mantissas. Each layer keeps its own true shape; nothing is
padded at runtime.

`inflate` / `deflate` convert to and from the padded interchange layout, where
every layer is stored at the maximum (rows, cols) found across the network and
the true dims are kept alongside.
"""
import numpy as np

from tinyml_pipeline.errors import ConfigurationError
from tinyml_pipeline.fixed_point import quantize_array, words_from_raw


def _frozen(array):
    array = np.array(array, dtype=np.int64, copy=True)
    array.flags.writeable = False
    return array


class LayerParameters:
    def __init__(self, weights, biases, fmt):
        weights = np.asarray(weights)
        biases = np.asarray(biases)
        if weights.ndim != 2 or weights.shape[0] == 0 or weights.shape[1] == 0:
            raise ConfigurationError(f"weights must be a non-empty 2-D matrix, got shape {weights.shape}")
        if biases.ndim != 1 or biases.shape[0] != weights.shape[0]:
            raise ConfigurationError(
                f"expected {weights.shape[0]} biases for {weights.shape[0]} neurons, got shape {biases.shape}")
        for name, array in (("weights", weights), ("biases", biases)):
            if array.size and (array.min() < fmt.min_raw or array.max() > fmt.max_raw):
                raise ConfigurationError(f"{name} contain values outside {fmt}")
        self.fmt = fmt
        self.weights = _frozen(weights)
        self.biases = _frozen(biases)

    @classmethod
    def from_floats(cls, weights, biases, config):
        fmt = config.word_format
        return cls(quantize_array(weights, fmt, config.rounding, config.overflow),
                   quantize_array(biases, fmt, config.rounding, config.overflow), fmt)

    @property
    def dims(self):
        """(rows, cols) = (neuron count, input count)."""
        return tuple(int(d) for d in self.weights.shape)

    @property
    def rows(self):
        return self.dims[0]

    @property
    def cols(self):
        return self.dims[1]

    def weight_vector(self, row):
        return words_from_raw(self.weights[row], self.fmt)

    def bias(self, row):
        return words_from_raw(self.biases[row:row + 1], self.fmt)[0]

    def __eq__(self, other):
        if not isinstance(other, LayerParameters):
            return NotImplemented
        return (self.fmt == other.fmt and np.array_equal(self.weights, other.weights)
                and np.array_equal(self.biases, other.biases))

    def __repr__(self):
        return f"LayerParameters(dims={self.dims}, fmt={self.fmt!r})"


class NetworkParameters:
    """Ordered, immutable sequence of LayerParameters forming a valid chain."""

    def __init__(self, layers):
        self._layers = tuple(layers)
        if not self._layers:
            raise ConfigurationError("network has no layers")
        fmt = self._layers[0].fmt
        for index, layer in enumerate(self._layers):
            if layer.fmt != fmt:
                raise ConfigurationError(f"word format {layer.fmt} differs from {fmt}", layer=index)
            if index > 0 and layer.cols != self._layers[index - 1].rows:
                raise ConfigurationError(
                    f"input width {layer.cols} does not match layer {index - 1} output width "
                    f"{self._layers[index - 1].rows}", layer=index)

    @classmethod
    def from_floats(cls, layers, config):
        """Build from [(weights, biases), ...] real-valued arrays."""
        built = []
        for index, (weights, biases) in enumerate(layers):
            try:
                built.append(LayerParameters.from_floats(weights, biases, config))
            except ConfigurationError as exc:
                raise exc.with_context(layer=index) from None
        return cls(built)

    @property
    def layer_dims(self):
        return [layer.dims for layer in self._layers]

    @property
    def input_width(self):
        return self._layers[0].cols

    @property
    def output_width(self):
        return self._layers[-1].rows

    @property
    def fmt(self):
        return self._layers[0].fmt

    def max_dims(self):
        return (max(rows for rows, _ in self.layer_dims), max(cols for _, cols in self.layer_dims))

    def __len__(self):
        return len(self._layers)

    def __getitem__(self, index):
        return self._layers[index]

    def __iter__(self):
        return iter(self._layers)

    def __eq__(self, other):
        if not isinstance(other, NetworkParameters):
            return NotImplemented
        return self._layers == other._layers

    def __repr__(self):
        return f"NetworkParameters(dims={self.layer_dims})"


# -- padded interchange layout ---------------------------------------------

def inflate(parameters, max_dims=None, fill=0):
    """Pad every layer to `max_dims` (default: network maximum).

    Returns (weights[L, R, C], biases[L, R], dims[L, 2]).
    """
    max_rows, max_cols = max_dims or parameters.max_dims()
    count = len(parameters)
    weights = np.full((count, max_rows, max_cols), fill, dtype=np.int64)
    biases = np.full((count, max_rows), fill, dtype=np.int64)
    dims = np.zeros((count, 2), dtype=np.int64)
    for index, layer in enumerate(parameters):
        rows, cols = layer.dims
        if rows > max_rows or cols > max_cols:
            raise ConfigurationError(f"dims {layer.dims} exceed padding {max_rows}x{max_cols}", layer=index)
        weights[index, :rows, :cols] = layer.weights
        biases[index, :rows] = layer.biases
        dims[index] = (rows, cols)
    return weights, biases, dims


def deflate(weights, biases, dims, fmt):
    """Slice a padded store back to true per-layer dims. Padding is never read."""
    layers = []
    for index, (rows, cols) in enumerate(np.asarray(dims)):
        rows, cols = int(rows), int(cols)
        if rows == 0 or cols == 0:
            raise ConfigurationError("layer dimension could not be determined", layer=index)
        layers.append(LayerParameters(weights[index, :rows, :cols], biases[index, :rows], fmt))
    return NetworkParameters(layers)
