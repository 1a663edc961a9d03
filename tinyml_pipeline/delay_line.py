""" delay_line.py - Fixed-depth ring buffer standing in for a register pipeline. """


class DelayLine:
    """A value shifted in on tick t comes out on tick t + depth.

    Empty slots hold None (a pipeline bubble). `occupancy` counts the non-bubble
    entries currently in flight. A depth of 0 passes values straight through.
    """

    def __init__(self, depth):
        if depth < 0:
            raise ValueError(f"delay line depth must be >= 0, got {depth}")
        self.depth = depth
        self._slots = [None] * depth
        self._head = 0
        self.occupancy = 0

    def shift(self, value=None):
        """Push `value` into the entry stage and return what leaves the exit stage."""
        if self.depth == 0:
            return value
        leaving = self._slots[self._head]
        self._slots[self._head] = value
        self._head = (self._head + 1) % self.depth
        if value is not None:
            self.occupancy += 1
        if leaving is not None:
            self.occupancy -= 1
        return leaving

    def clear(self):
        self._slots = [None] * self.depth
        self._head = 0
        self.occupancy = 0

    def is_empty(self):
        return self.occupancy == 0

    def __len__(self):
        return self.occupancy

    def __repr__(self):
        return f"DelayLine(depth={self.depth}, occupancy={self.occupancy})"
