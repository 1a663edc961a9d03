"""
Fixed-Point Words
=================
Bit-accurate signed/unsigned fixed-point values.

A value is stored as a Python integer mantissa ("raw") plus a format. Python
integers are arbitrary precision, so add and multiply are exact and only
`resize` ever loses information. Narrowing applies a rounding policy to the low
bits and an overflow policy to the high bits, matching the fixed-point package
semantics of the hardware this models:

    truncate  -> floor (arithmetic shift right)
    round     -> round half up
    saturate  -> clamp to the representable extreme
    wrap      -> keep the low `width` bits (two's complement)
"""

import enum
import fractions
import functools
import math

import numpy as np


class RoundingPolicy(enum.Enum):
    TRUNCATE = "truncate"
    ROUND = "round"


class OverflowPolicy(enum.Enum):
    SATURATE = "saturate"
    WRAP = "wrap"


class FixedPointFormat:
    """Bit layout of a fixed-point value.

    For signed formats `integral_bits` includes the sign bit.
    """

    __slots__ = ("integral_bits", "fractional_bits", "signed")

    def __init__(self, integral_bits, fractional_bits, signed=True):
        if integral_bits < 0 or fractional_bits < 0:
            raise ValueError("bit counts must be non-negative")
        if integral_bits + fractional_bits == 0:
            raise ValueError("format must have at least one bit")
        if signed and integral_bits == 0:
            raise ValueError("signed format needs an integral bit for the sign")
        self.integral_bits = integral_bits
        self.fractional_bits = fractional_bits
        self.signed = signed

    @property
    def width(self):
        return self.integral_bits + self.fractional_bits

    @property
    def min_raw(self):
        return -(1 << (self.width - 1)) if self.signed else 0

    @property
    def max_raw(self):
        if self.signed:
            return (1 << (self.width - 1)) - 1
        return (1 << self.width) - 1

    @property
    def resolution(self):
        return 2.0 ** -self.fractional_bits

    @property
    def min_value(self):
        return self.min_raw * self.resolution

    @property
    def max_value(self):
        return self.max_raw * self.resolution

    def scaled(self, factor, extra_integral_bits=0):
        """Format `factor` times as wide (dword = 2, quad = 4, octal = 8)."""
        return FixedPointFormat(self.integral_bits * factor + extra_integral_bits,
                                self.fractional_bits * factor, self.signed)

    def as_signed(self):
        if self.signed:
            return self
        return FixedPointFormat(self.integral_bits + 1, self.fractional_bits, True)

    def as_unsigned(self):
        if not self.signed:
            return self
        return FixedPointFormat(self.integral_bits - 1, self.fractional_bits, False)

    def __eq__(self, other):
        if not isinstance(other, FixedPointFormat):
            return NotImplemented
        return (self.integral_bits, self.fractional_bits, self.signed) == \
            (other.integral_bits, other.fractional_bits, other.signed)

    def __hash__(self):
        return hash((self.integral_bits, self.fractional_bits, self.signed))

    def __repr__(self):
        kind = "sfixed" if self.signed else "ufixed"
        return f"{kind}({self.integral_bits}.{self.fractional_bits})"


def saturate_raw(raw, fmt):
    """Clamp a mantissa to the representable range of `fmt`."""
    if raw > fmt.max_raw:
        return fmt.max_raw
    if raw < fmt.min_raw:
        return fmt.min_raw
    return raw


def wrap_raw(raw, fmt):
    """Keep the low `fmt.width` bits, reinterpreting as two's complement if signed."""
    raw &= (1 << fmt.width) - 1
    if fmt.signed and raw & (1 << (fmt.width - 1)):
        raw -= 1 << fmt.width
    return raw


def shift_raw(raw, shift, rounding):
    """Scale a mantissa by 2**shift. Negative shifts drop low bits per `rounding`."""
    if shift >= 0:
        return raw << shift
    drop = -shift
    if rounding is RoundingPolicy.ROUND:
        raw += 1 << (drop - 1)
    # Python >> on negative ints is arithmetic, i.e. floor
    return raw >> drop


@functools.total_ordering
class FixedPointWord:
    """Immutable fixed-point scalar."""

    __slots__ = ("raw", "fmt")

    def __init__(self, raw, fmt):
        raw = int(raw)
        if raw < fmt.min_raw or raw > fmt.max_raw:
            raise ValueError(f"raw value {raw} out of range for {fmt}")
        self.raw = raw
        self.fmt = fmt

    # -- construction -----------------------------------------------------

    @classmethod
    def zero(cls, fmt):
        return cls(0, fmt)

    @classmethod
    def from_raw(cls, raw, fmt, overflow=OverflowPolicy.SATURATE):
        if overflow is OverflowPolicy.WRAP:
            return cls(wrap_raw(int(raw), fmt), fmt)
        return cls(saturate_raw(int(raw), fmt), fmt)

    @classmethod
    def from_float(cls, value, fmt, rounding=RoundingPolicy.TRUNCATE,
                   overflow=OverflowPolicy.SATURATE):
        value = float(value)
        if math.isnan(value):
            raise ValueError(f"cannot represent NaN in {fmt}")
        if math.isinf(value):
            # no bit pattern to wrap, so infinities always clamp
            return cls(fmt.max_raw if value > 0 else fmt.min_raw, fmt)
        scaled = value * (1 << fmt.fractional_bits)
        if rounding is RoundingPolicy.ROUND:
            raw = math.floor(scaled + 0.5)
        else:
            raw = math.floor(scaled)
        return cls.from_raw(raw, fmt, overflow)

    @classmethod
    def from_bits(cls, bits, fmt):
        """Parse a two's complement bit string such as '00010000'."""
        bits = bits.strip()
        if len(bits) != fmt.width or set(bits) - {"0", "1"}:
            raise ValueError(f"expected {fmt.width} binary digits, got {bits!r}")
        return cls(wrap_raw(int(bits, 2), fmt), fmt)

    # -- conversion -------------------------------------------------------

    def to_float(self):
        return self.raw / float(1 << self.fmt.fractional_bits)

    def __float__(self):
        return self.to_float()

    def to_bits(self):
        return format(self.raw & ((1 << self.fmt.width) - 1), f"0{self.fmt.width}b")

    def resize(self, fmt, rounding=RoundingPolicy.TRUNCATE,
               overflow=OverflowPolicy.SATURATE):
        """Re-express in `fmt`, dropping precision and range per the policies."""
        raw = shift_raw(self.raw, fmt.fractional_bits - self.fmt.fractional_bits, rounding)
        return FixedPointWord.from_raw(raw, fmt, overflow)

    def to_signed(self):
        return self.resize(self.fmt.as_signed())

    def to_unsigned(self, rounding=RoundingPolicy.TRUNCATE,
                    overflow=OverflowPolicy.SATURATE):
        return self.resize(self.fmt.as_unsigned(), rounding, overflow)

    # -- arithmetic -------------------------------------------------------

    def _aligned(self, other):
        a, b = self, other
        if a.fmt.signed != b.fmt.signed:
            a, b = a.to_signed(), b.to_signed()
        frac = max(a.fmt.fractional_bits, b.fmt.fractional_bits)
        ra = a.raw << (frac - a.fmt.fractional_bits)
        rb = b.raw << (frac - b.fmt.fractional_bits)
        return a, b, ra, rb, frac

    def add(self, other):
        a, b, ra, rb, frac = self._aligned(other)
        integral = max(a.fmt.integral_bits, b.fmt.integral_bits) + 1
        return FixedPointWord(ra + rb, FixedPointFormat(integral, frac, a.fmt.signed))

    def multiply(self, other):
        a, b = self, other
        if a.fmt.signed != b.fmt.signed:
            a, b = a.to_signed(), b.to_signed()
        fmt = FixedPointFormat(a.fmt.integral_bits + b.fmt.integral_bits,
                               a.fmt.fractional_bits + b.fmt.fractional_bits,
                               a.fmt.signed)
        return FixedPointWord(a.raw * b.raw, fmt)

    __add__ = add
    __mul__ = multiply

    def __neg__(self):
        fmt = self.fmt.as_signed()
        fmt = FixedPointFormat(fmt.integral_bits + 1, fmt.fractional_bits, True)
        return FixedPointWord(-self.raw, fmt)

    def __sub__(self, other):
        return self.add(-other)

    # -- comparison -------------------------------------------------------

    def _compare_key(self, other):
        if isinstance(other, FixedPointWord):
            _, _, ra, rb, _ = self._aligned(other)
            return ra, rb
        return NotImplemented

    def __eq__(self, other):
        key = self._compare_key(other)
        if key is NotImplemented:
            return NotImplemented
        return key[0] == key[1]

    def __lt__(self, other):
        key = self._compare_key(other)
        if key is NotImplemented:
            return NotImplemented
        return key[0] < key[1]

    def __hash__(self):
        # equal values in different formats must hash alike
        return hash(fractions.Fraction(self.raw, 1 << self.fmt.fractional_bits))

    def __repr__(self):
        return f"FixedPointWord({self.to_float()!r}, {self.fmt!r})"


def quantize_array(values, fmt, rounding=RoundingPolicy.TRUNCATE,
                   overflow=OverflowPolicy.SATURATE):
    """Quantize a float array to raw mantissas of `fmt` (int64)."""
    scaled = np.asarray(values, dtype=np.float64) * (1 << fmt.fractional_bits)
    if rounding is RoundingPolicy.ROUND:
        raw = np.floor(scaled + 0.5)
    else:
        raw = np.floor(scaled)
    if overflow is OverflowPolicy.WRAP:
        return np.vectorize(lambda r: wrap_raw(int(r), fmt), otypes=[np.int64])(raw)
    return np.clip(raw, fmt.min_raw, fmt.max_raw).astype(np.int64)


def dequantize_array(raw, fmt):
    return np.asarray(raw, dtype=np.float64) / (1 << fmt.fractional_bits)


def words_from_raw(raw_values, fmt):
    return [FixedPointWord(int(r), fmt) for r in raw_values]
