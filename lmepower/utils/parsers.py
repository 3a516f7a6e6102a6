"""
Parsing utilities for LMEPower.

This module provides parsing functions for lme4-style model formulas and
for ``name=value`` design assignment strings.
"""

import re
from typing import Dict, List, Tuple

__all__ = []

# Unicode-aware identifier pattern: letter or underscore, then word characters
_IDENT = r"[^\W\d]\w*"


def _parse_equation(equation: str) -> Tuple[str, str, List[Dict]]:
    """Parse an lme4-style formula into its components.

    Splits the equation at ``~`` or ``=``, extracts random-effect
    terms, and returns the cleaned fixed-effect formula.

    Supported random-effect syntax:
    - ``(1|group)``: random intercept
    - ``(1 + x|group)``: random intercept and slope
    - ``(1 + x1 + x2|group)``: random intercept and multiple slopes

    Args:
        equation: Formula string (e.g. ``"response ~ condition + (1+condition | subject)"``).

    Returns:
        Tuple of ``(dependent_var, fixed_formula, random_effects)`` where
        *random_effects* is a list of dicts with keys:
        - ``"type"``: ``"random_intercept"`` or ``"random_slope"``
        - ``"grouping_var"``: grouping variable name
        - ``"slope_vars"``: list of slope variable names (slopes only)

    Raises:
        ValueError: If the formula has no dependent variable, no fixed
            part, or a grouping variable appears more than once.
    """
    equation = equation.replace(" ", "")

    if "~" in equation:
        dep_var, formula_part = equation.split("~", 1)
    elif "=" in equation:
        dep_var, formula_part = equation.split("=", 1)
    else:
        raise ValueError(f"Formula must contain '~' separating response and predictors: {equation!r}")

    if not re.fullmatch(_IDENT, dep_var):
        raise ValueError(f"Invalid response variable in formula: {dep_var!r}")

    random_effects: List[Dict] = []
    seen_grouping_vars: set = set()

    # 1. Random slopes: (1 + var1 + var2 | group)
    slope_pattern = rf"\(\s*1\s*\+\s*([^|]+?)\s*\|\s*({_IDENT})\s*\)"
    for match in re.finditer(slope_pattern, formula_part):
        slope_vars_str = match.group(1)
        grouping_var = match.group(2)

        if grouping_var in seen_grouping_vars:
            raise ValueError(f"Duplicate random effect grouping variable: '{grouping_var}'")
        seen_grouping_vars.add(grouping_var)

        slope_vars = [v.strip() for v in slope_vars_str.split("+") if v.strip()]
        if not slope_vars:
            raise ValueError(f"No slope variables found in random effect term for '{grouping_var}'")

        random_effects.append(
            {
                "type": "random_slope",
                "grouping_var": grouping_var,
                "slope_vars": slope_vars,
            }
        )

    formula_part = re.sub(slope_pattern, "", formula_part)

    # 2. Random intercepts: (1|var)
    intercept_pattern = rf"\(\s*1\s*\|\s*({_IDENT})\s*\)"
    for match in re.finditer(intercept_pattern, formula_part):
        grouping_var = match.group(1)
        if grouping_var in seen_grouping_vars:
            raise ValueError(f"Duplicate random effect grouping variable: '{grouping_var}'")
        seen_grouping_vars.add(grouping_var)
        random_effects.append({"type": "random_intercept", "grouping_var": grouping_var})

    formula_part = re.sub(intercept_pattern, "", formula_part)

    # Clean up extra + signs
    formula_part = re.sub(r"\++", "+", formula_part)
    formula_part = formula_part.strip("+").strip()

    if not formula_part:
        raise ValueError(f"Formula has no fixed-effect terms: {equation!r}")
    if "(" in formula_part or "|" in formula_part:
        raise ValueError(f"Unsupported random-effect term in formula: {equation!r}")

    return dep_var, formula_part, random_effects


def _split_assignments(input_string: str) -> List[str]:
    """Split ``"a=1, b=2"`` into ``["a=1", "b=2"]``, dropping empty parts."""
    return [part.strip() for part in input_string.split(",") if part.strip()]


def _parse_design_assignments(input_string: str) -> Dict[str, float]:
    """Parse a design assignment string such as ``"effect=50, sigma=200"``.

    Values are parsed as numbers (``int`` when they have no fractional
    part marker, ``float`` otherwise). Field names are not checked here.

    Raises:
        ValueError: On malformed assignments or non-numeric values,
            listing every problem found.
    """
    values: Dict[str, float] = {}
    errors: List[str] = []

    for assignment in _split_assignments(input_string):
        if "=" not in assignment:
            errors.append(f"Invalid assignment '{assignment}' (expected name=value)")
            continue
        name, raw = (s.strip() for s in assignment.split("=", 1))
        if not re.fullmatch(_IDENT, name):
            errors.append(f"Invalid parameter name '{name}'")
            continue
        if name in values:
            errors.append(f"Parameter '{name}' assigned more than once")
            continue
        try:
            values[name] = int(raw) if re.fullmatch(r"[+-]?\d+", raw) else float(raw)
        except ValueError:
            errors.append(f"Invalid value for '{name}': '{raw}' (must be a number)")

    if errors:
        raise ValueError("Could not parse design assignments:\n" + "\n".join(f"• {e}" for e in errors))
    return values
