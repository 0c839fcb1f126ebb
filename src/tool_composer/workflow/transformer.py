"""Data transformer for wiring step outputs into later step inputs.

Stateless: one instance can be shared by any number of concurrent runs.
"""

import copy
import json
import logging
from typing import Any, Dict, List, Optional

from .conditions import evaluate_condition
from .models import INPUT_SOURCE, DataBinding, TransformType
from .paths import extract_value, is_truthy, parse_path

logger = logging.getLogger(__name__)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant: {name}")


def loads_strict(text: str) -> Any:
    """json.loads that refuses NaN, Infinity and -Infinity."""
    return json.loads(text, parse_constant=_reject_constant)


class DataTransformer:
    """Extracts, transforms and merges values flowing between steps."""

    def extract_value(self, data: Any, path: str) -> Any:
        """Return the value at ``path`` inside ``data``, or None if unreachable."""
        return extract_value(data, path)

    def apply_binding(self, binding: DataBinding, variables: Dict[str, Any]) -> Any:
        """Look up the binding source, extract its path and apply the transform."""
        if binding.source not in variables and binding.source != INPUT_SOURCE:
            logger.warning(f"Binding source not found: {binding.source}")
            return None

        value = self.extract_value(variables.get(binding.source), binding.source_path)

        if binding.transform and binding.transform != TransformType.IDENTITY.value:
            value = self.transform(value, binding.transform, binding.transform_config)

        return value

    def transform(self, value: Any, kind: str, config: Optional[Dict[str, Any]] = None) -> Any:
        """Apply a single transform kind to ``value``."""
        if kind == TransformType.IDENTITY:
            return value

        if kind == TransformType.JSON_PARSE:
            if isinstance(value, str):
                try:
                    return loads_strict(value)
                except (ValueError, RecursionError):
                    logger.warning(f"Failed to parse JSON: {value[:200]!r}")
                    return value
            return value

        if kind == TransformType.JSON_STRINGIFY:
            return json.dumps(value, default=str, separators=(",", ":"))

        if kind == TransformType.SPLIT:
            return value.split("\n") if isinstance(value, str) else value

        if kind == TransformType.JOIN:
            if isinstance(value, list):
                return "\n".join("" if item is None else str(item) for item in value)
            return value

        if kind == TransformType.FLATTEN:
            if isinstance(value, list):
                flat: List[Any] = []
                for item in value:
                    if isinstance(item, list):
                        flat.extend(item)
                    else:
                        flat.append(item)
                return flat
            return value

        if kind == TransformType.FIRST:
            if isinstance(value, list):
                return value[0] if value else None
            return value

        if kind == TransformType.LAST:
            if isinstance(value, list):
                return value[-1] if value else None
            return value

        if kind == TransformType.COUNT:
            if isinstance(value, (list, str)):
                return len(value)
            return 0

        if kind in (TransformType.MAP, TransformType.FILTER, TransformType.EXTRACT_PROPERTY):
            return self._configured_transform(value, kind, config)

        logger.warning(f"Unknown transform type: {kind}")
        return value

    def _configured_transform(self, value: Any, kind: str, config: Optional[Dict[str, Any]]) -> Any:
        """map / filter / extract_property; passthrough without a config."""
        if not config:
            logger.debug(f"Transform '{kind}' has no config, passing value through")
            return value

        if kind == TransformType.MAP:
            path = config.get("path", "")
            if isinstance(value, list):
                return [extract_value(item, path) for item in value]
            return value

        if kind == TransformType.FILTER:
            condition = config.get("condition")
            if not condition or not isinstance(value, list):
                return value
            return [item for item in value if evaluate_condition(condition, {"item": item})]

        prop = config.get("property", "")
        if isinstance(value, list):
            return [extract_value(item, prop) for item in value]
        return extract_value(value, prop)

    def resolve_bindings(self, bindings: List[DataBinding], variables: Dict[str, Any]) -> Dict[str, Any]:
        """Apply every binding; later bindings to the same target win."""
        resolved: Dict[str, Any] = {}
        for binding in bindings:
            resolved[binding.target] = self.apply_binding(binding, variables)
        return resolved

    def merge_args(self, static_args: Optional[Dict[str, Any]], resolved: Dict[str, Any]) -> Dict[str, Any]:
        """Shallow merge; resolved bindings override static args."""
        return {**(static_args or {}), **resolved}

    def set_value(self, obj: Dict[str, Any], path: str, value: Any) -> None:
        """Write ``value`` at ``path``, creating intermediate dicts/lists."""
        parts = parse_path(path)
        if not parts:
            raise ValueError(f"Cannot set value at empty path: {path!r}")

        current: Any = obj
        for part, next_part in zip(parts, parts[1:]):
            empty = [] if isinstance(next_part, int) else {}
            if isinstance(part, int):
                _pad_list(current, part)
                if current[part] is None:
                    current[part] = empty
            elif current.get(part) is None:
                current[part] = empty
            current = current[part]

        last = parts[-1]
        if isinstance(last, int):
            _pad_list(current, last)
        current[last] = value

    def deep_copy(self, data: Any) -> Any:
        return copy.deepcopy(data)

    def is_truthy(self, value: Any) -> bool:
        return is_truthy(value)

    def evaluate_condition(self, expression: str, variables: Dict[str, Any]) -> bool:
        """Evaluate a step condition; unparseable conditions are False."""
        return evaluate_condition(expression, variables)


def _pad_list(items: List[Any], index: int) -> None:
    if len(items) <= index:
        items.extend([None] * (index + 1 - len(items)))
