"""
Pipeline Simulator
==================
Lock-step driver around a Network: owns the global tick counter, applies reset
sequences, fires inferences, waits for the latched done with a statically
computed timeout and optionally records a per-tick trace.
"""
import csv
import logging

from tinyml_pipeline.errors import SimulationTimeout
from tinyml_pipeline.golden_model import classify
from tinyml_pipeline.input_assembler import InputAssembler, encode_vector
from tinyml_pipeline.network import Network
from tinyml_pipeline.neuron import to_word

log = logging.getLogger(__name__)


class InferenceResult:
    def __init__(self, outputs, ticks, start_tick):
        self.outputs = outputs
        self.ticks = ticks
        self.start_tick = start_tick

    @property
    def prediction(self):
        return classify(self.outputs)

    def as_floats(self):
        return [word.to_float() for word in self.outputs]

    def __repr__(self):
        return f"InferenceResult(prediction={self.prediction}, ticks={self.ticks})"


class PipelineSimulator:
    def __init__(self, parameters, config, record_trace=False):
        self.config = config
        self.network = Network(parameters, config)
        self.tick_count = 0
        self.record_trace = record_trace
        self.trace = []

    @property
    def latency(self):
        return self.network.latency

    def tick(self, fire=False, inputs=None):
        self.network.tick(fire, inputs)
        self.tick_count += 1
        if self.record_trace:
            self._record(fire)

    def _record(self, fire):
        row = {
            "tick": self.tick_count,
            "fire": int(bool(fire)),
            "reset": int(self.network.in_reset),
            "network_state": self.network.state,
            "done": int(self.network.done),
        }
        for layer in self.network.layers:
            row[f"layer{layer.index}_state"] = layer.neurons[0].state.value
            row[f"layer{layer.index}_done"] = int(layer.done)
        row["outputs"] = " ".join(f"{word.to_float():g}" for word in self.network.outputs)
        self.trace.append(row)

    def reset(self, cycles=2):
        """Assert reset for `cycles` ticks, then release it."""
        active = self.config.reset_active_high
        self.network.drive_reset(active)
        for _ in range(cycles):
            self.tick()
        self.network.drive_reset(not active)
        log.debug("Reset complete")

    def wait_for_done(self, timeout_ticks=None):
        """Tick until the network's done latch is set.

        Returns the number of ticks waited, or None on timeout.
        """
        if timeout_ticks is None:
            timeout_ticks = self.latency
        for waited in range(1, timeout_ticks + 1):
            if self.network.done:
                return waited - 1
            self.tick()
        if self.network.done:
            return timeout_ticks
        log.error(f"Timeout waiting for done after {timeout_ticks} ticks")
        return None

    def run_inference(self, inputs):
        """Fire once with `inputs` and wait for the latched result."""
        inputs = [to_word(x, self.config) for x in inputs]
        start = self.tick_count
        self.tick(fire=True, inputs=inputs)
        waited = self.wait_for_done(self.latency)
        if waited is None:
            raise SimulationTimeout(f"no done within {self.latency} ticks of fire")
        ticks = self.tick_count - start
        log.info(f"Inference complete after {ticks} ticks")
        return InferenceResult(list(self.network.outputs), ticks, start)

    def run_byte_stream(self, stream, paced=False):
        """Feed bytes through an InputAssembler and fire when the vector is complete.

        Bytes arrive one per tick, or with `paced` one per 8-N-1 frame at the
        configured baud rate. The assembler's fire pulse is registered, so it
        reaches the network on the tick after the last byte.
        """
        assembler = InputAssembler(self.network.input_width, self.config)
        stream = list(stream)
        expected = self.network.input_width * assembler.bytes_per_word
        if len(stream) != expected:
            raise ValueError(f"expected {expected} bytes, got {len(stream)}")
        gap = self.config.byte_period_ticks - 1 if paced else 0
        for value in stream:
            for _ in range(gap):
                assembler.tick()
                self.tick()
            assembler.tick(True, value)
            self.tick()
        start = self.tick_count
        self.tick(fire=assembler.fire, inputs=assembler.vector)
        waited = self.wait_for_done(self.latency)
        if waited is None:
            raise SimulationTimeout(f"no done within {self.latency} ticks of fire")
        return InferenceResult(list(self.network.outputs), self.tick_count - start, start)

    def encode_inputs(self, inputs):
        return encode_vector([to_word(x, self.config) for x in inputs], self.config)

    def write_trace(self, path):
        if not self.trace:
            raise ValueError("no trace recorded (construct with record_trace=True)")
        with open(path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=list(self.trace[0].keys()))
            writer.writeheader()
            writer.writerows(self.trace)
        log.info(f"Wrote {len(self.trace)} trace rows to {path}")
