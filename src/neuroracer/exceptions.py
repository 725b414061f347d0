"""Error taxonomy shared by the network, the track and the evolution driver."""


class NeuroracerError(Exception):
    """Base class for every error raised on purpose by neuroracer."""


class ConfigurationError(NeuroracerError, ValueError):
    """Invalid settings, track or save data; prevents the simulation from starting."""


class InvariantViolationError(NeuroracerError, RuntimeError):
    """Population state was read before it was set up, e.g. a missing snapshot."""


class TransitionError(NeuroracerError, RuntimeError):
    """A generation transition failed; the population is in an undefined state."""
