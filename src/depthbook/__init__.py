"""depthbook - order book snapshot, market order simulation and live depth distribution."""

from depthbook.constants import APP_VERSION

__version__ = APP_VERSION
