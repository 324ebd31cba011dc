"""
Variable store and parameter interpolation.
Handles ${name} and *name references inside block parameters.
"""

import json
import re
from typing import Any, Dict, Mapping


# Names written by the engine itself
ITERATION_VAR = "_iteration"
INDEX_VAR = "_index"
ITEM_SELECTOR_VAR = "_itemSelector"
SCREENSHOT_VAR = "_screenshot"

RESERVED_NAMES = frozenset({ITERATION_VAR, INDEX_VAR, ITEM_SELECTOR_VAR, SCREENSHOT_VAR})

SIGIL = "*"


class VariableSubstitutor:
    """
    Substitutes variable references in parameter values.

    Two syntaxes coexist:
    - ${name}: replaced with the value, or with "" when unbound
    - *name: replaced with the value when bound, otherwise left as literal
      "*name" so it can still act as a sentinel for the content capability

    Both are matched in a single pass; substituted text is never re-scanned.
    """

    VAR_PATTERN = re.compile(r'\$\{(\w+)\}|\*(\w+)')

    def substitute(self, value: Any, variables: Mapping[str, Any]) -> Any:
        """
        Substitute variables in a value.

        Args:
            value: Raw parameter value
            variables: Bound variables

        Returns:
            The substituted string, or the value unchanged when it is not a string
        """
        if not isinstance(value, str) or not value:
            return value

        def replace_var(match: "re.Match[str]") -> str:
            braced, starred = match.group(1), match.group(2)
            if braced is not None:
                bound = variables.get(braced)
                return '' if bound is None else self._to_string(bound)
            bound = variables.get(starred)
            if bound is None:
                return match.group(0)
            return self._to_string(bound)

        return self.VAR_PATTERN.sub(replace_var, value)

    def substitute_params(self, params: Mapping[str, Any], variables: Mapping[str, Any]) -> Dict[str, Any]:
        """Substitute every value of a params mapping into a new dict."""
        return {key: self.substitute(raw, variables) for key, raw in params.items()}

    def _to_string(self, value: Any) -> str:
        if isinstance(value, bool):
            return 'true' if value else 'false'
        elif isinstance(value, (int, float)):
            return str(value)
        elif isinstance(value, str):
            return value
        elif isinstance(value, (bytes, bytearray)):
            return value.decode('utf-8', errors='replace')
        else:
            # Complex types get JSON representation
            return json.dumps(value, ensure_ascii=False, default=str)


_substitutor = VariableSubstitutor()


def interpolate(template: Any, variables: Mapping[str, Any]) -> Any:
    """Module-level shortcut for VariableSubstitutor.substitute."""
    return _substitutor.substitute(template, variables)


def interpolate_params(params: Mapping[str, Any], variables: Mapping[str, Any]) -> Dict[str, Any]:
    """Module-level shortcut for VariableSubstitutor.substitute_params."""
    return _substitutor.substitute_params(params, variables)


def strip_sigil(name: Any) -> str:
    """Turn a target-variable parameter into a store key ("*price" -> "price")."""
    text = '' if name is None else str(name)
    if text.startswith(SIGIL):
        return text[len(SIGIL):]
    return text


class VariableStore(dict):
    """
    Run-scoped variables.

    A plain dict underneath; the runner owns one per run and hands it to
    the executor and the control-flow handlers by reference.
    """

    def interpolate(self, template: Any) -> Any:
        return interpolate(template, self)

    def interpolate_params(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        return interpolate_params(params, self)

    def assign(self, name: Any, value: Any) -> bool:
        """
        Store a value under a target-variable parameter.

        Returns:
            False when the name is empty and nothing was stored
        """
        key = strip_sigil(name)
        if not key:
            return False
        self[key] = value
        return True
