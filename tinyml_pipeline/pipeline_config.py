# Pipeline Configuration
#
# Defaults live as upper-case class attributes; an instance carries the
# validated values actually used by one pipeline. Every component takes the
# instance at construction time, nothing reads module-level constants.
#
# Word layout: sfixed(INTEGRAL_BITS.FRACTIONAL_BITS), sign bit counted in
# INTEGRAL_BITS. With the defaults (8.8) the word is 16 bits wide, the MAC
# product and the accumulator are sfixed(16.16) and activations are ufixed(0.8).

import math

from tinyml_pipeline.errors import ConfigurationError
from tinyml_pipeline.fixed_point import FixedPointFormat, OverflowPolicy, RoundingPolicy


class PipelineConfig:
    CLOCK_FREQUENCY = 100_000_000   # Hz
    BAUD_RATE = 115200              # host byte link, 8-N-1

    INTEGRAL_BITS = 8
    FRACTIONAL_BITS = 8
    MAX_WORD_WIDTH = 32             # parameter storage is int64

    ROUNDING = RoundingPolicy.TRUNCATE
    OVERFLOW = OverflowPolicy.SATURATE

    RESET_ACTIVE_HIGH = True
    RESET_SYNCHRONOUS = True

    BATCH_SIZE = 1
    PIPELINE_STAGES = 0

    ACCUMULATOR_SCALE = 2           # 2 = dword, 4 = quad, 8 = octal
    GUARD_BITS = 0                  # extra accumulator integral bits

    DEBOUNCE_TIMEOUT = 0.01         # seconds
    SYNCHRONIZER_STAGES = 2

    _FIELDS = {
        "clock_frequency": "CLOCK_FREQUENCY",
        "baud_rate": "BAUD_RATE",
        "integral_bits": "INTEGRAL_BITS",
        "fractional_bits": "FRACTIONAL_BITS",
        "rounding": "ROUNDING",
        "overflow": "OVERFLOW",
        "reset_active_high": "RESET_ACTIVE_HIGH",
        "reset_synchronous": "RESET_SYNCHRONOUS",
        "batch_size": "BATCH_SIZE",
        "pipeline_stages": "PIPELINE_STAGES",
        "accumulator_scale": "ACCUMULATOR_SCALE",
        "guard_bits": "GUARD_BITS",
        "debounce_timeout": "DEBOUNCE_TIMEOUT",
        "synchronizer_stages": "SYNCHRONIZER_STAGES",
    }

    def __init__(self, **overrides):
        unknown = set(overrides) - set(self._FIELDS)
        if unknown:
            raise ConfigurationError(f"unknown configuration option(s): {', '.join(sorted(unknown))}")
        for field, default_attr in self._FIELDS.items():
            setattr(self, field, overrides.get(field, getattr(type(self), default_attr)))
        self.rounding = RoundingPolicy(self.rounding)
        self.overflow = OverflowPolicy(self.overflow)
        self.validate()

    @classmethod
    def from_dict(cls, options):
        """Build from a plain mapping, ignoring None values (e.g. unset CLI flags)."""
        return cls(**{k: v for k, v in options.items() if v is not None})

    def replace(self, **overrides):
        values = self.to_dict()
        values.update(overrides)
        return type(self)(**values)

    def to_dict(self):
        return {field: getattr(self, field) for field in self._FIELDS}

    def validate(self):
        if self.integral_bits < 2:
            # the activation bounds (+-2.0625) need a sign bit and two integer bits in the dword
            raise ConfigurationError(f"integral_bits must be >= 2, got {self.integral_bits}")
        if self.fractional_bits < 1:
            raise ConfigurationError(f"fractional_bits must be >= 1, got {self.fractional_bits}")
        if self.integral_bits + self.fractional_bits > self.MAX_WORD_WIDTH:
            raise ConfigurationError(
                f"word width {self.integral_bits + self.fractional_bits} exceeds {self.MAX_WORD_WIDTH} bits")
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.pipeline_stages < 0:
            raise ConfigurationError(f"pipeline_stages must be >= 0, got {self.pipeline_stages}")
        if self.accumulator_scale not in (2, 4, 8):
            raise ConfigurationError(
                f"accumulator_scale must be 2 (dword), 4 (quad) or 8 (octal), got {self.accumulator_scale}")
        if self.guard_bits < 0:
            raise ConfigurationError(f"guard_bits must be >= 0, got {self.guard_bits}")
        if self.clock_frequency <= 0 or self.baud_rate <= 0:
            raise ConfigurationError("clock_frequency and baud_rate must be positive")
        if self.baud_rate > self.clock_frequency:
            raise ConfigurationError("baud_rate cannot exceed clock_frequency")
        if self.debounce_timeout < 0:
            raise ConfigurationError("debounce_timeout must be non-negative")
        if self.synchronizer_stages < 1:
            raise ConfigurationError(f"synchronizer_stages must be >= 1, got {self.synchronizer_stages}")

    # Derived formats

    @property
    def word_format(self):
        return FixedPointFormat(self.integral_bits, self.fractional_bits, signed=True)

    @property
    def nibble_format(self):
        return FixedPointFormat(math.ceil(self.integral_bits / 2),
                                math.ceil(self.fractional_bits / 2), signed=True)

    @property
    def dword_format(self):
        return self.word_format.scaled(2)

    @property
    def quad_format(self):
        return self.word_format.scaled(4)

    @property
    def octal_format(self):
        return self.word_format.scaled(8)

    @property
    def accumulator_format(self):
        return self.word_format.scaled(self.accumulator_scale, self.guard_bits)

    @property
    def activation_format(self):
        return FixedPointFormat(0, self.fractional_bits, signed=False)

    @property
    def word_width(self):
        return self.integral_bits + self.fractional_bits

    @property
    def delimiter_bits(self):
        """Reserved all-ones pattern separating weight rows in parameter files."""
        return "1" * self.word_width

    # External collaborator timing

    @property
    def bit_period_ticks(self):
        return self.clock_frequency // self.baud_rate

    @property
    def byte_period_ticks(self):
        """One 8-N-1 frame: start bit, 8 data bits, stop bit."""
        return 10 * self.bit_period_ticks

    def reset_asserted(self, level):
        return bool(level) == self.reset_active_high

    def __repr__(self):
        return f"PipelineConfig({', '.join(f'{k}={v!r}' for k, v in self.to_dict().items())})"
