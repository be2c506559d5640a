"""Context Builder - Turns submitted form values into rule variables"""
import re
from typing import Any, Dict, Mapping, Optional

from ..domain.models import StepDefinition

# Java-style 64-bit integer literal (Long.parseLong accepts a leading sign)
_INTEGER_RE = re.compile(r"[+-]?\d+", re.ASCII)
# Decimal floating point literal with optional exponent
_DECIMAL_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)
_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_WHITESPACE_RE = re.compile(r"\s+")

_INT64_MIN = -(2 ** 63)
_INT64_MAX = 2 ** 63 - 1


class ContextBuilder:
    """
    Build the flat variable mapping used by the rule evaluator

    - Every non-empty submitted value is exposed under its own key
    - Each field on the current step also exposes its value under an
      identifier derived from its label ("Total Amount" -> Total_Amount)
    - Field-key entries win over label aliases on collision

    Pure and stateless - safe to share between threads.
    """

    def build_context(
        self,
        submitted_values: Optional[Mapping[str, Any]],
        current_step: Optional[StepDefinition]
    ) -> Dict[str, Any]:
        context: Dict[str, Any] = {}
        if not submitted_values:
            return context

        for key, value in submitted_values.items():
            if _is_present(value):
                context[key] = coerce_value(value)

        if current_step is None:
            return context

        for field in current_step.fields:
            key = field.field_key
            if not key or key not in submitted_values:
                continue
            value = submitted_values[key]
            if not _is_present(value):
                continue
            alias = label_to_identifier(field.label)
            if alias is not None and alias not in context:
                context[alias] = coerce_value(value)

        return context


def _is_present(value: Any) -> bool:
    return value is not None and value != ""


def coerce_value(value: Any) -> Any:
    """
    Coerce a raw submitted value

    Strings holding an integer become int (64-bit range), strings holding a
    decimal become float, anything else is returned unchanged.
    """
    if not isinstance(value, str):
        return value

    if _INTEGER_RE.fullmatch(value):
        number = int(value)
        if _INT64_MIN <= number <= _INT64_MAX:
            return number
    text = value.strip()
    if _DECIMAL_RE.fullmatch(text):
        return float(text)
    return value


def label_to_identifier(label: Optional[str]) -> Optional[str]:
    """
    Derive a rule variable name from a field label

    Returns None when the label does not yield a valid identifier
    (e.g. "Amount (USD)").
    """
    if not label:
        return None
    candidate = _WHITESPACE_RE.sub("_", label.strip())
    if _IDENTIFIER_RE.fullmatch(candidate):
        return candidate
    return None
