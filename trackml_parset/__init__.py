__all__ = [
    "BoundClass", "ParameterTrait", "correct",
    "ParameterPolicy", "ParDefs", "DEFAULT_POLICY", "BoundIndices", "BOUND_POLICY",
    "ParameterSet", "FullParameterSet",
    "Measurement",
    "policy_from_config", "policy_to_config", "load_policy", "dump_policy",
    "ParameterSetError", "SelectionError", "DimensionError", "PolicyError",
]

# Errors
from .exceptions import ParameterSetError, SelectionError, DimensionError, PolicyError

# Traits & range correction
from .traits import BoundClass, ParameterTrait, correct

# Policies
from .policy import ParameterPolicy, ParDefs, DEFAULT_POLICY, BoundIndices, BOUND_POLICY

# Parameter sets
from .parameter_set import ParameterSet, FullParameterSet

# Measurements
from .measurement import Measurement

# Configuration
from .config import policy_from_config, policy_to_config, load_policy, dump_policy
