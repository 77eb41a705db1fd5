"""Binding resolution: nested lookup, formatters, hide rules."""
from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

from gfx_engines.data_binding.models import Binding
from gfx_engines.scene_graph.models import Element, ElementType

MISSING: Any = object()

_PATH_SPLIT = re.compile(r"[.\[\]]+")
_CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "JPY": "¥", "CAD": "CA$", "AUD": "A$"}


def get_nested_value(record: Any, path: str, default: Any = None) -> Any:
    """Look up ``a.b[0].c`` style paths in dicts and lists."""
    if not record or not path:
        return default
    current = record
    for part in (p for p in _PATH_SPLIT.split(path) if p):
        if isinstance(current, Mapping):
            if part not in current:
                return default
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return default
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _format_number(value: float) -> str:
    if isinstance(value, int) or float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.3f}".rstrip("0").rstrip(".")


def _format_currency(value: float, currency: str) -> str:
    symbol = _CURRENCY_SYMBOLS.get(currency.upper(), f"{currency.upper()} ")
    decimals = 0 if currency.upper() == "JPY" else 2
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.{decimals}f}"


def apply_formatter(value: Any, formatter: Optional[str], options: Optional[Mapping[str, Any]] = None) -> Any:
    options = options or {}
    result = value
    if formatter == "number" and _is_number(value):
        result = _format_number(value)
    elif formatter == "currency" and _is_number(value):
        result = _format_currency(value, str(options.get("currency") or "USD"))
    elif formatter == "percentage" and _is_number(value):
        decimals = int(options.get("decimals") or 1)
        result = f"{value:.{decimals}f}%"
    elif formatter == "uppercase" and isinstance(value, str):
        result = value.upper()
    elif formatter == "lowercase" and isinstance(value, str):
        result = value.lower()
    elif formatter == "capitalize" and isinstance(value, str):
        result = value[:1].upper() + value[1:].lower()
    elif formatter == "truncate" and isinstance(value, str):
        max_length = int(options.get("maxLength") or 50)
        suffix = str(options.get("truncateSuffix") or "...")
        if len(value) > max_length:
            result = value[: max_length - len(suffix)] + suffix

    # prefix/suffix apply regardless of formatter
    prefix = options.get("prefix")
    suffix = options.get("suffix")
    if prefix or suffix:
        result = f"{prefix or ''}{_display(result)}{suffix or ''}"
    return result


def _display(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _binding_for(element_id: str, bindings: Iterable[Binding]) -> Optional[Binding]:
    return next((b for b in bindings if b.element_id == element_id), None)


def _set_path(target: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    current = target
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[parts[-1]] = value


def resolve_element_bindings(
    element: Element,
    bindings: Iterable[Binding],
    record: Optional[Mapping[str, Any]],
) -> Element:
    """Return a copy of ``element`` with its bound property filled from ``record``."""
    if not record:
        return element
    binding = _binding_for(element.id, bindings)
    if binding is None:
        return element
    raw = get_nested_value(record, binding.binding_key, MISSING)
    if raw is MISSING:
        return element
    value = apply_formatter(raw, binding.formatter, binding.formatter_options)
    data = element.model_dump()
    _set_path(data, binding.target_property, value)
    return Element.model_validate(data)


def get_bound_value(binding: Binding, record: Optional[Mapping[str, Any]]) -> Any:
    if not record:
        return binding.default_value
    raw = get_nested_value(record, binding.binding_key, MISSING)
    if raw is MISSING:
        return binding.default_value
    return apply_formatter(raw, binding.formatter, binding.formatter_options)


def should_hide_element(
    element_id: str,
    bindings: Iterable[Binding],
    record: Optional[Mapping[str, Any]],
) -> bool:
    binding = _binding_for(element_id, bindings)
    if binding is None or not binding.formatter_options:
        return False
    options = binding.formatter_options
    raw = get_nested_value(record, binding.binding_key, MISSING) if record else MISSING
    if options.get("hideOnNull") and (raw is MISSING or raw is None or raw == ""):
        return True
    if options.get("hideOnZero") and _is_number(raw) and raw == 0:
        return True
    return False


def default_target_property(element_type: ElementType) -> str:
    if ElementType(element_type) == ElementType.IMAGE:
        return "content.src"
    return "content.text"


def match_ratio(records: List[Mapping[str, Any]], binding_keys: Iterable[str]) -> float:
    """Share of ``binding_keys`` that resolve against the first record."""
    keys = list(dict.fromkeys(binding_keys))
    if not keys or not records:
        return 0.0
    sample = records[0]
    hits = sum(1 for key in keys if get_nested_value(sample, key, MISSING) is not MISSING)
    return hits / len(keys)
