# Copyright 2025 Spencer Williams
#
# Use of this source code is governed by an MIT license:
# https://github.com/sw23/life-model/blob/main/LICENSE

"""Exception types raised by the simulation engine."""


class SimulationError(Exception):
    """Base class for all errors raised by the simulation engine."""


class ConfigurationError(SimulationError, ValueError):
    """Raised when a simulation or portfolio configuration is invalid.

    Raised before any simulation work starts, so no partial results exist.
    """


class EmptyInputError(SimulationError, ValueError):
    """Raised when a resampling routine is given an empty return series."""


class InsufficientDataError(SimulationError, ValueError):
    """Raised when a return series is too short to classify into regimes."""
