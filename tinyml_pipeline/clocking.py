""" clocking.py - Tick and reset discipline shared by every clocked component.

Each component advances once per `tick()`. Subclasses implement `_step()`,
which must compute all next values from the state committed on the previous
tick, and `_reset_state()`, which restores the post-reset baseline.

Reset is driven as a level with `drive_reset(level)`:
  * synchronous: the level is sampled at the next tick; while asserted the
    tick resets the component instead of stepping it.
  * asynchronous: asserting resets immediately, mid-tick; ticks are ignored
    for as long as the level stays asserted.
Polarity comes from `config.reset_active_high`.
"""


class ClockedComponent:
    def __init__(self, config):
        self.config = config
        self._reset_level_asserted = False

    @property
    def in_reset(self):
        return self._reset_level_asserted

    def drive_reset(self, level):
        asserted = self.config.reset_asserted(level)
        self._reset_level_asserted = asserted
        if asserted and not self.config.reset_synchronous:
            self._reset_state()

    def reset(self):
        """Force the baseline state now, independent of the reset line."""
        self._reset_state()

    def tick(self, *args, **kwargs):
        if self._reset_level_asserted:
            if self.config.reset_synchronous:
                self._reset_state()
            return
        self._step(*args, **kwargs)

    def _step(self, *args, **kwargs):
        raise NotImplementedError

    def _reset_state(self):
        raise NotImplementedError
