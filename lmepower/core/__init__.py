"""Core components for the LMEPower framework.

Re-exports the foundational building blocks:

- ``DesignParameters``, ``expand_grid`` - design points and parameter grids.
- ``ReplicationRunner``, ``ReplicationResult`` - one simulate-and-fit cycle.
- ``SweepDriver`` - seeded execution of a grid, sequential or parallel.
- ``ResultStore`` - append-only CSV persistence and resume.
- ``PowerAggregator``, ``first_achieved``, ``failure_summary``,
  ``build_power_result`` - power calculation and result formatting.
"""

from .parameters import DesignParameters, expand_grid
from .results import PowerAggregator, build_power_result, failure_summary, first_achieved
from .simulation import ReplicationResult, ReplicationRunner
from .store import ResultStore
from .sweep import SweepDriver

__all__ = [
    # Parameters
    "DesignParameters",
    "expand_grid",
    # Simulation
    "ReplicationRunner",
    "ReplicationResult",
    "SweepDriver",
    # Persistence
    "ResultStore",
    # Results
    "PowerAggregator",
    "first_achieved",
    "failure_summary",
    "build_power_result",
]
