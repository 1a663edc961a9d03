""" errors.py - Exceptions raised by the pipeline model. """


class ConfigurationError(ValueError):
    """Fatal configuration problem, raised before any tick runs.

    Carries optional layer/neuron indices so the failing unit can be identified.
    """

    def __init__(self, message, layer=None, neuron=None):
        self.layer = layer
        self.neuron = neuron
        self.detail = message
        super().__init__(self._format(message))

    def _format(self, message):
        where = []
        if self.layer is not None:
            where.append(f"layer {self.layer}")
        if self.neuron is not None:
            where.append(f"neuron {self.neuron}")
        if where:
            return f"{', '.join(where)}: {message}"
        return message

    def with_context(self, layer=None, neuron=None):
        """Return a copy with extra location info filled in."""
        return ConfigurationError(
            self.detail,
            layer=self.layer if layer is None else layer,
            neuron=self.neuron if neuron is None else neuron,
        )


class SimulationTimeout(RuntimeError):
    """Done was not observed within the statically computed tick bound."""
