from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

import orjson

from trackml_parset.exceptions import PolicyError
from trackml_parset.policy import ParameterPolicy
from trackml_parset.traits import BoundClass, ParameterTrait


__all__ = ["policy_from_config", "policy_to_config", "load_policy", "dump_policy"]

logger = logging.getLogger(__name__)

_BOUND_NAMES: Dict[str, BoundClass] = {b.name.lower(): b for b in BoundClass}

# symbolic limits accepted in place of numbers
_SYMBOLS: Dict[str, float] = {
    "pi": math.pi,
    "-pi": -math.pi,
    "2pi": 2.0 * math.pi,
    "inf": math.inf,
    "-inf": -math.inf,
}


def _as_limit(value: Any, field: str, pname: str) -> float:
    if isinstance(value, str):
        try:
            return _SYMBOLS[value.strip().lower()]
        except KeyError:
            raise PolicyError(f"Parameter {pname!r}: unknown symbolic {field} {value!r}") from None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PolicyError(f"Parameter {pname!r}: {field} must be a number, got {value!r}")
    return float(value)


def policy_from_config(cfg: Mapping[str, Any]) -> ParameterPolicy:
    r"""
    Build a :class:`ParameterPolicy` from an in-memory configuration.

    Expected layout::

        {
          "name": "ParDefs",
          "parameters": [
            {"name": "loc1",  "bound": "unbound"},
            {"name": "phi",   "bound": "cyclic",  "min": "-pi", "max": "pi"},
            {"name": "theta", "bound": "bounded", "min": 0.0,   "max": "pi"}
          ]
        }

    The list order defines the canonical order of the full parameter space.
    ``bound`` defaults to ``"unbound"``.

    Raises
    ------
    PolicyError
        If the layout or any trait is invalid.
    """
    if not isinstance(cfg, Mapping):
        raise PolicyError(f"Policy configuration must be a mapping, got {type(cfg).__name__}")
    name = cfg.get("name")
    params = cfg.get("parameters")
    if not isinstance(name, str) or not name:
        raise PolicyError("Policy configuration needs a non-empty 'name'")
    if not isinstance(params, list) or not params:
        raise PolicyError(f"Policy {name!r}: 'parameters' must be a non-empty list")

    traits = []
    for entry in params:
        if not isinstance(entry, Mapping) or not isinstance(entry.get("name"), str):
            raise PolicyError(f"Policy {name!r}: every parameter needs a 'name', got {entry!r}")
        pname = entry["name"]
        bound = str(entry.get("bound", "unbound")).lower()
        if bound not in _BOUND_NAMES:
            raise PolicyError(f"Parameter {pname!r}: bound must be one of {sorted(_BOUND_NAMES)}, got {bound!r}")
        bound_class = _BOUND_NAMES[bound]
        if bound_class is BoundClass.UNBOUND:
            trait = ParameterTrait(
                bound_class,
                _as_limit(entry.get("min", "-inf"), "min", pname),
                _as_limit(entry.get("max", "inf"), "max", pname),
            )
        else:
            if "min" not in entry or "max" not in entry:
                raise PolicyError(f"Parameter {pname!r}: {bound} parameters need 'min' and 'max'")
            trait = ParameterTrait(
                bound_class,
                _as_limit(entry["min"], "min", pname),
                _as_limit(entry["max"], "max", pname),
            )
        traits.append((pname, trait))

    policy = ParameterPolicy.from_traits(name, traits)
    logger.debug("Configured policy %s: %s", name, [n for n, _ in traits])
    return policy


def policy_to_config(policy: ParameterPolicy) -> Dict[str, Any]:
    """Inverse of :func:`policy_from_config` (limits written as plain numbers)."""
    params: List[Dict[str, Any]] = []
    for ident, trait in policy.traits.items():
        entry: Dict[str, Any] = {"name": ident.name, "bound": trait.bound_class.name.lower()}
        if trait.bound_class is not BoundClass.UNBOUND:
            entry["min"] = trait.min
            entry["max"] = trait.max
        params.append(entry)
    return {"name": policy.name, "parameters": params}


def load_policy(path: Union[str, Path]) -> ParameterPolicy:
    r"""
    Load a policy from a JSON file with :mod:`orjson`.

    Raises
    ------
    FileNotFoundError
        If ``path`` does not exist.
    ValueError
        If the file is not valid JSON.
    PolicyError
        If the content does not describe a valid policy.
    """
    path = Path(path)
    try:
        cfg = orjson.loads(path.read_bytes())
    except orjson.JSONDecodeError as e:
        raise ValueError(f"Failed to parse {path}: {e}") from e
    logger.info("Loaded parameter policy from %s", path)
    return policy_from_config(cfg)


def dump_policy(policy: ParameterPolicy, path: Union[str, Path]) -> None:
    """Write ``policy`` as indented JSON."""
    path = Path(path)
    path.write_bytes(orjson.dumps(policy_to_config(policy), option=orjson.OPT_INDENT_2))
    logger.info("Wrote parameter policy %s to %s", policy.name, path)
