"""``${...}`` marker substitution for chart and drawing XML text."""

from __future__ import annotations

import html
import logging
import re
from collections.abc import Sized
from typing import Any, Mapping

from jinja2 import Environment, StrictUndefined, Undefined
from jinja2.exceptions import TemplateError

logger = logging.getLogger(__name__)

_MARKER_RE = re.compile(r"\$\{(?P<expression>[^{}]+)\}")
# Markers consumed by other collaborators; they are never substituted here.
_STRUCTURAL_MARKERS = {"repeat", "image"}
_CALL_NAME_RE = re.compile(r"^\s*(?P<name>[A-Za-z_]\w*)\s*\(")


def _collection_size(context: Mapping[str, Any]):
    def size(name) -> int:
        value = context.get(name) if isinstance(name, str) else name
        if value is None or isinstance(value, Undefined):
            return 0
        if isinstance(value, Sized) and not isinstance(value, (str, bytes)):
            return len(value)
        return 1

    return size


def prepare_marker_env() -> Environment:
    """Return the jinja2 environment used to evaluate marker expressions.

    The delimiters mirror the template marker syntax so expressions are read
    exactly as the author wrote them inside ``${...}``.
    """

    return Environment(
        variable_start_string="${",
        variable_end_string="}",
        block_start_string="${%",
        block_end_string="%}",
        comment_start_string="${#",
        comment_end_string="#}",
        undefined=StrictUndefined,
        autoescape=False,
        keep_trailing_newline=True,
    )


class VariableResolver:
    """Substitute ``${var}`` and ``${size(name)}`` markers inside XML text.

    Instances are callables taking and returning the text of one XML part, the
    shape :meth:`ChartProcessor.restore` expects. Values are XML-escaped.
    Markers that cannot be resolved are left untouched and their expressions
    collected in :attr:`undefined`.
    """

    def __init__(self, context: Mapping[str, Any] | None = None, env: Environment | None = None):
        self.context = dict(context or {})
        self.env = env or prepare_marker_env()
        self._values = {"size": _collection_size(self.context), **self.context}
        self.undefined: set[str] = set()
        self._compiled: dict[str, Any] = {}

    def __call__(self, text: str) -> str:
        if not text or "${" not in text:
            return text
        return _MARKER_RE.sub(self._substitute, text)

    def _substitute(self, match: re.Match) -> str:
        expression = html.unescape(match.group("expression")).strip()
        call = _CALL_NAME_RE.match(expression)
        if call and call.group("name") in _STRUCTURAL_MARKERS:
            return match.group(0)

        try:
            evaluator = self._compiled.get(expression)
            if evaluator is None:
                evaluator = self.env.compile_expression(expression, undefined_to_none=False)
                self._compiled[expression] = evaluator
            value = evaluator(**self._values)
        except TemplateError as exc:
            logger.debug("Leaving marker %s unresolved: %s", match.group(0), exc)
            self.undefined.add(expression)
            return match.group(0)

        if isinstance(value, Undefined):
            self.undefined.add(expression)
            return match.group(0)
        if value is None:
            return ""
        return html.escape(str(value))
