"""
Input Assembler
===============
Boundary between the host byte link and the network.

The receiver (an 8-N-1 UART, outside this model) delivers a one-tick
`byte_ready` pulse together with an 8-bit value. Each input word takes
ceil(W / 8) bytes, most significant first; the excess high bits of the first
byte are ignored and the word is read as two's complement. When the last byte
of the vector arrives, the assembled vector is presented and `fire` is high for
exactly one tick.
"""
import logging

from tinyml_pipeline.clocking import ClockedComponent
from tinyml_pipeline.fixed_point import FixedPointWord, wrap_raw

log = logging.getLogger(__name__)


def bytes_per_word(config):
    return (config.word_width + 7) // 8


def encode_vector(values, config):
    """Host side: serialise words into the byte stream the assembler expects."""
    width = bytes_per_word(config)
    stream = []
    for value in values:
        raw = value.raw & ((1 << config.word_width) - 1)
        stream.extend((raw >> (8 * (width - 1 - i))) & 0xFF for i in range(width))
    return stream


class InputAssembler(ClockedComponent):
    def __init__(self, vector_length, config):
        super().__init__(config)
        if vector_length < 1:
            raise ValueError(f"vector length must be >= 1, got {vector_length}")
        self.vector_length = vector_length
        self.bytes_per_word = bytes_per_word(config)
        self._reset_state()

    def _reset_state(self):
        self.fire = False
        self.vector = [FixedPointWord.zero(self.config.word_format)] * self.vector_length
        self._words = []
        self._partial = 0
        self._byte_count = 0
        self.vectors_assembled = 0

    def _step(self, byte_ready=False, byte_value=0):
        fire = False
        if byte_ready:
            if not 0 <= byte_value <= 0xFF:
                raise ValueError(f"byte value out of range: {byte_value}")
            self._partial = (self._partial << 8) | byte_value
            self._byte_count += 1
            if self._byte_count == self.bytes_per_word:
                fmt = self.config.word_format
                self._words.append(FixedPointWord(wrap_raw(self._partial, fmt), fmt))
                self._partial = 0
                self._byte_count = 0
                if len(self._words) == self.vector_length:
                    self.vector = self._words
                    self._words = []
                    self.vectors_assembled += 1
                    fire = True
                    log.debug(f"Input vector #{self.vectors_assembled} assembled")
        self.fire = fire
