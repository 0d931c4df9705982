"""
Interpolation engine — ``{{.Name}}`` placeholder substitution.

Command templates and built-in scripts reference values by name:

    chmod +x {{.Path}} && pwsh -File '{{.Path}}'

Placeholders are looked up in a plain mapping (build data plus the
provisioner's own ``Path``/``Vars`` values). Whitespace inside the braces
is allowed (``{{ .Path }}``). Anything else between ``{{`` and ``}}``, an
unclosed ``{{``, or a name missing from the mapping is a ``TemplateError``.

Pure functions only: no registry, no shared state.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from pwsh_provisioner.core.errors import TemplateError

_PLACEHOLDER = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_NAME = re.compile(r"^\s*\.([A-Za-z_][A-Za-z0-9_]*)\s*$")


def placeholders(template: str) -> list[str]:
    """List the placeholder names a template references, in order of appearance.

    Raises:
        TemplateError: If the template is malformed.
    """
    names: list[str] = []
    for match in _PLACEHOLDER.finditer(template):
        names.append(_parse_name(match.group(1), template))
    _check_unclosed(_PLACEHOLDER.sub("", template), template)
    return names


def render(template: str, data: Mapping[str, Any]) -> str:
    """Substitute every ``{{.Name}}`` in a template from ``data``.

    Values are converted with ``str()``; ``None`` renders as an empty string.

    Raises:
        TemplateError: On a malformed template or an undefined placeholder.
    """

    def _replace(m: re.Match) -> str:
        name = _parse_name(m.group(1), template)
        if name not in data:
            raise TemplateError(f"Undefined placeholder '{name}' in template: {template}")
        value = data[name]
        return "" if value is None else str(value)

    rendered = _PLACEHOLDER.sub(_replace, template)
    _check_unclosed(_PLACEHOLDER.sub("", template), template)
    return rendered


def _parse_name(inner: str, template: str) -> str:
    m = _NAME.match(inner)
    if m is None:
        raise TemplateError(f"Malformed placeholder '{{{{{inner}}}}}' in template: {template}")
    return m.group(1)


def _check_unclosed(stripped: str, template: str) -> None:
    if "{{" in stripped:
        raise TemplateError(f"Unclosed placeholder in template: {template}")
