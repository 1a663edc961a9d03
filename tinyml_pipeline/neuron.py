"""
Neuron
======
One compute unit: a bias, a weight vector, a batched MAC and an activation,
wrapped in a clocked state machine.

    IDLE -> [INITIALIZING] -> PROCESSING -> [FINALIZING] -> [ACTIVATING] -> DONE -> IDLE

The bracketed states last P-1 ticks each and only exist for P > 1.

Pipeline model for depth P:
  * entry line (depth P): batch k is issued on tick k (tick 0 samples fire)
    and leaves the line on tick k + P, where its B-way MAC is computed.
  * accumulate line (depth P-1): MAC partial sums travel through it before
    being folded into the accumulator. FINALIZING drains it.
  * output line (depth P-1): the activated result is held there during
    ACTIVATING so the output latency matches the configured depth.
With P = 0 batches are read straight from the latched inputs and there are no
lines. P = 1 keeps the P = 0 latency: the fire tick fills the only stage.
"""
import enum
import logging

from tinyml_pipeline.activation import SigmoidApproximation
from tinyml_pipeline.clocking import ClockedComponent
from tinyml_pipeline.delay_line import DelayLine
from tinyml_pipeline.errors import ConfigurationError
from tinyml_pipeline.fixed_point import FixedPointWord
from tinyml_pipeline.latency import neuron_latency

log = logging.getLogger(__name__)


class NeuronState(enum.Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    PROCESSING = "processing"
    FINALIZING = "finalizing"
    ACTIVATING = "activating"
    DONE = "done"


def to_word(value, config):
    """Coerce a float or any FixedPointWord into the configured word format."""
    if isinstance(value, FixedPointWord):
        return value.resize(config.word_format, config.rounding, config.overflow)
    return FixedPointWord.from_float(value, config.word_format, config.rounding, config.overflow)


class Neuron(ClockedComponent):
    def __init__(self, weights, bias, config, batch_size=None, pipeline_stages=None,
                 activation=None):
        super().__init__(config)
        self.batch_size = config.batch_size if batch_size is None else batch_size
        self.pipeline_stages = config.pipeline_stages if pipeline_stages is None else pipeline_stages

        self.weights = [to_word(w, config) for w in weights]
        self.n_inputs = len(self.weights)
        if self.n_inputs == 0:
            raise ConfigurationError("neuron has no inputs")
        if self.batch_size < 1 or self.batch_size > self.n_inputs:
            raise ConfigurationError(
                f"batch size {self.batch_size} outside [1, {self.n_inputs}]")
        if self.n_inputs % self.batch_size:
            raise ConfigurationError(
                f"batch size {self.batch_size} does not evenly divide input count {self.n_inputs}")
        if self.pipeline_stages < 0:
            raise ConfigurationError(f"pipeline depth must be >= 0, got {self.pipeline_stages}")
        self.n_batches = self.n_inputs // self.batch_size

        self.activation = activation or SigmoidApproximation(config)
        self.accumulator_format = config.accumulator_format
        self.bias = to_word(bias, config)
        self.seed = self.bias.resize(self.accumulator_format, config.rounding, config.overflow)

        stages = self.pipeline_stages
        self.entry_line = DelayLine(stages)
        self.accumulate_line = DelayLine(max(stages - 1, 0))
        self.output_line = DelayLine(max(stages - 1, 0))

        self._reset_state()

    @property
    def latency(self):
        return neuron_latency(self.n_inputs, self.batch_size, self.pipeline_stages)

    @property
    def done(self):
        return self.state is NeuronState.DONE

    @property
    def busy(self):
        return self.state is not NeuronState.IDLE

    def _reset_state(self):
        self.state = NeuronState.IDLE
        self.accumulator = self.seed
        self.local_inputs = [FixedPointWord.zero(self.config.word_format)] * self.n_inputs
        self.issued = 0
        self.consumed = 0
        self.countdown = 0
        self.output = FixedPointWord.zero(self.config.activation_format)
        self.entry_line.clear()
        self.accumulate_line.clear()
        self.output_line.clear()

    # -- datapath ---------------------------------------------------------

    def _latch(self, inputs):
        if inputs is None or len(inputs) != self.n_inputs:
            got = None if inputs is None else len(inputs)
            raise ValueError(f"expected {self.n_inputs} inputs, got {got}")
        return [to_word(x, self.config) for x in inputs]

    def _batch(self, index, inputs):
        start = index * self.batch_size
        stop = start + self.batch_size
        return list(zip(inputs[start:stop], self.weights[start:stop]))

    def _next_batch(self, issued, inputs):
        """Batch to push into the entry line this tick (None once all are issued)."""
        if issued < self.n_batches:
            return self._batch(issued, inputs), issued + 1
        return None, issued

    def mac(self, batch):
        """B-way multiply-accumulate. Products are exact dwords, sums saturate."""
        cfg = self.config
        partial = FixedPointWord.zero(self.accumulator_format)
        for x, w in batch:
            partial = (partial + x * w).resize(self.accumulator_format, cfg.rounding, cfg.overflow)
        return partial

    def _fold(self, accumulator, partial):
        if partial is None:
            return accumulator
        return (accumulator + partial).resize(self.accumulator_format,
                                              self.config.rounding, self.config.overflow)

    # -- state machine ----------------------------------------------------

    def _step(self, fire=False, inputs=None):
        state = self.state
        accumulator = self.accumulator
        local_inputs = self.local_inputs
        issued = self.issued
        consumed = self.consumed
        countdown = self.countdown
        output = self.output
        stages = self.pipeline_stages

        if state is NeuronState.IDLE:
            if fire:
                local_inputs = self._latch(inputs)
                accumulator = self.seed
                issued = consumed = 0
                if stages >= 1:
                    batch, issued = self._next_batch(issued, local_inputs)
                    self.entry_line.shift(batch)
                if stages > 1:
                    state = NeuronState.INITIALIZING
                    countdown = stages - 1
                else:
                    state = NeuronState.PROCESSING

        elif state is NeuronState.INITIALIZING:
            batch, issued = self._next_batch(issued, local_inputs)
            self.entry_line.shift(batch)
            countdown -= 1
            if countdown == 0:
                state = NeuronState.PROCESSING

        elif state is NeuronState.PROCESSING:
            if stages == 0:
                batch = self._batch(consumed, local_inputs)
            else:
                incoming, issued = self._next_batch(issued, local_inputs)
                batch = self.entry_line.shift(incoming)
            consumed += 1
            accumulator = self._fold(accumulator, self.accumulate_line.shift(self.mac(batch)))
            if consumed == self.n_batches:
                if stages > 1:
                    state = NeuronState.FINALIZING
                    countdown = stages - 1
                else:
                    output = self.activation(accumulator)
                    state = NeuronState.DONE

        elif state is NeuronState.FINALIZING:
            accumulator = self._fold(accumulator, self.accumulate_line.shift(None))
            countdown -= 1
            if countdown == 0:
                self.output_line.shift(self.activation(accumulator))
                state = NeuronState.ACTIVATING
                countdown = stages - 1

        elif state is NeuronState.ACTIVATING:
            leaving = self.output_line.shift(None)
            countdown -= 1
            if countdown == 0:
                output = leaving
                state = NeuronState.DONE

        elif state is NeuronState.DONE:
            state = NeuronState.IDLE
            accumulator = self.seed
            issued = consumed = 0

        else:
            log.warning(f"Neuron in unrecognized state {state!r}, forcing idle")
            self._reset_state()
            return

        self.state = state
        self.accumulator = accumulator
        self.local_inputs = local_inputs
        self.issued = issued
        self.consumed = consumed
        self.countdown = countdown
        self.output = output

    def __repr__(self):
        return (f"Neuron(inputs={self.n_inputs}, batch_size={self.batch_size}, "
                f"pipeline_stages={self.pipeline_stages}, state={self.state})")
