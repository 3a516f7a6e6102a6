"""Statistical model fitting and data generation modules."""

from . import data_generation as data_generation
from . import mixed_models as mixed_models
