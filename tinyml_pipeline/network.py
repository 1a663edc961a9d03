"""
Network
=======
Layers chained by the fire/done handshake.

  * layer 0 is fired by the external fire and reads the external input vector
  * layer i > 0 is fired by layer i-1's done pulse and reads its outputs

Both are sampled from the previous tick's committed values before any layer is
stepped, so a done pulse from layer i starts layer i+1 on the next tick.

Unlike the neuron/layer pulse, the network's done is latched: it stays high,
with the output vector captured, until the next accepted fire. Between that
fire and the new result the output vector reads as zeros. A fire while busy is
ignored.
"""
import logging

from tinyml_pipeline.clocking import ClockedComponent
from tinyml_pipeline.fixed_point import FixedPointWord
from tinyml_pipeline.latency import network_latency
from tinyml_pipeline.layer import Layer

log = logging.getLogger(__name__)


class Network(ClockedComponent):
    def __init__(self, parameters, config):
        super().__init__(config)
        self.parameters = parameters
        self.layers = [Layer(layer, config, index=index) for index, layer in enumerate(parameters)]
        self._reset_state()

    @property
    def latency(self):
        return network_latency(self.parameters.layer_dims, self.config.batch_size,
                               self.config.pipeline_stages)

    @property
    def input_width(self):
        return self.parameters.input_width

    @property
    def output_width(self):
        return self.parameters.output_width

    @property
    def state(self):
        if self.busy:
            return "busy"
        return "done" if self.done else "idle"

    def _zero_outputs(self):
        return [FixedPointWord.zero(self.config.activation_format)] * self.output_width

    def _reset_state(self):
        for layer in self.layers:
            layer.reset()
        self.busy = False
        self.done = False
        self.outputs = self._zero_outputs()
        self.completed = 0

    def _step(self, fire=False, inputs=None):
        start = bool(fire) and not self.busy
        if fire and self.busy:
            log.debug("Fire ignored, network busy")
        if start and (inputs is None or len(inputs) != self.input_width):
            got = None if inputs is None else len(inputs)
            raise ValueError(f"expected {self.input_width} inputs, got {got}")

        # snapshot the committed hand-off signals before stepping anything
        fires = [start] + [layer.done for layer in self.layers[:-1]]
        vectors = [inputs] + [layer.outputs for layer in self.layers[:-1]]
        for layer, layer_fire, vector in zip(self.layers, fires, vectors):
            layer.tick(layer_fire, vector if layer_fire else None)

        if start:
            self.busy = True
            self.done = False
            self.outputs = self._zero_outputs()
        if self.layers[-1].done:
            self.busy = False
            self.done = True
            self.outputs = list(self.layers[-1].outputs)
            self.completed += 1
            log.debug(f"Network done, inference #{self.completed}")

    def __repr__(self):
        return f"Network(dims={self.parameters.layer_dims}, state={self.state})"
