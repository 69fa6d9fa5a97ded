"""Resolution of `${...}` expressions in build-file templates."""
from __future__ import annotations

import logging
import os
from typing import Callable, Mapping, Optional, Union

from ..common.errors import TemplateResolutionError

logger = logging.getLogger(__name__)

DefaultResolver = Callable[[str], Optional[str]]


class EnvironmentResolver:
    """
    Fallback resolver backed by the process environment.

    `env.NAME` reads the environment variable `NAME`; any other name is looked
    up verbatim.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self.environ = os.environ if environ is None else environ

    def __call__(self, name: str) -> Optional[str]:
        if name.startswith("env."):
            return self.environ.get(name[len("env."):])
        return self.environ.get(name)


def resolve_template(
    template: Union[bytes, str],
    properties: Mapping[str, str],
    default_resolver: Optional[DefaultResolver] = None,
) -> str:
    """
    Replace every `${...}` expression in the template.

    Supported forms are `${name}`, `${name:default}` and `${a,b}` (first
    name that resolves wins). `$$` yields a literal `$`. Each name is looked
    up in `properties` first, then via `default_resolver`.

    Args:
        template: Template text, bytes are decoded as UTF-8
        properties: Property values taking precedence over the default resolver
        default_resolver: Fallback lookup, defaults to EnvironmentResolver

    Returns:
        The resolved text

    Raises:
        TemplateResolutionError: If an expression resolves to nothing and has no default
    """
    if isinstance(template, bytes):
        template = template.decode("utf-8")
    resolver = default_resolver or EnvironmentResolver()

    out = []
    pos = 0
    length = len(template)
    while pos < length:
        char = template[pos]
        if char != "$" or pos + 1 >= length:
            out.append(char)
            pos += 1
            continue

        nxt = template[pos + 1]
        if nxt == "$":
            out.append("$")
            pos += 2
            continue
        if nxt != "{":
            out.append(char)
            pos += 1
            continue

        end = template.find("}", pos + 2)
        if end == -1:
            # unterminated, keep the rest verbatim
            out.append(template[pos:])
            break

        expression = template[pos + 2:end]
        out.append(_resolve_expression(expression, properties, resolver))
        pos = end + 1

    return "".join(out)


def _resolve_expression(expression: str, properties: Mapping[str, str], resolver: DefaultResolver) -> str:
    names, sep, default = expression.partition(":")
    for name in names.split(","):
        name = name.strip()
        if not name:
            continue
        value = properties.get(name)
        if value is None:
            value = resolver(name)
        if value is not None:
            logger.debug("Resolved ${%s} -> %s", name, value)
            return str(value)
    if sep:
        return default
    raise TemplateResolutionError(expression)
