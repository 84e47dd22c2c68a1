"""Exception hierarchy for parameter sets, selections and policies."""


class ParameterSetError(Exception):
    """Base class for all errors raised by :mod:`trackml_parset`."""


class SelectionError(ParameterSetError, KeyError):
    """Identifier not part of a policy/selection, duplicated, or selections mismatched."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep plain messages
        return str(self.args[0]) if self.args else ""


class DimensionError(ParameterSetError, ValueError):
    """Value vector or covariance shape does not match the selection size."""


class PolicyError(ParameterSetError, ValueError):
    """Invalid parameter trait or policy definition."""
