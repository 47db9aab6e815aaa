# template.py
"""
`{{ namespace.field }}` substitution for exec steps and env values.

Namespaces:
  meta    global (document root) metadata: doc, version, any extra root field
  target  the node that owns the text: name, path, doc, type

`\\{{` always produces a literal `{{`, closed or not (e.g. for `docker ps --format '\\{{.Names}}'`).
`$VAR` is left alone; the shell expands it at execution time.
"""
from __future__ import annotations

import re
from typing import Callable, Dict, Optional

from .errors import TemplateError
from .model import RootMeta, Target

_EXPR = re.compile(r"[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*")

_TARGET_FIELDS: Dict[str, Callable[[Target], str]] = {
    "name": lambda t: t.name,
    "path": lambda t: t.path,
    "doc": lambda t: t.doc,
    "type": lambda t: t.kind.value,
}


def _lookup(expr: str, meta: RootMeta, node: Target) -> Optional[str]:
    parts = expr.split(".")
    if len(parts) != 2:
        return None
    namespace, name = parts
    if namespace == "meta":
        return meta.lookup(name)
    if namespace == "target":
        getter = _TARGET_FIELDS.get(name)
        return getter(node) if getter else None
    return None


def render(text: str, meta: RootMeta, node: Target, index: Optional[int] = None) -> str:
    """
    Substitute every placeholder in `text`.

    Pure function of (text, root metadata, owning node). Raises TemplateError
    for an unterminated, empty, malformed or unknown placeholder; `index` is
    reported with it (e.g. the exec step position). A placeholder must close
    on the line it opens.
    """
    out = []
    pos = 0
    while True:
        start = text.find("{{", pos)
        if start == -1:
            out.append(text[pos:])
            return "".join(out)

        if start > 0 and text[start - 1] == "\\":
            out.append(text[pos:start - 1])
            out.append("{{")
            pos = start + 2
            continue

        end = text.find("}}", start + 2)
        eol = text.find("\n", start)
        if end == -1 or (eol != -1 and eol < end):
            stop = eol if eol != -1 else len(text)
            raise TemplateError(
                node.path,
                "unterminated placeholder",
                index=index,
                placeholder=text[start:min(stop, start + 40)],
            )

        raw = text[start:end + 2]
        expr = text[start + 2:end].strip()
        if not expr or not _EXPR.fullmatch(expr):
            raise TemplateError(node.path, "malformed placeholder", index=index, placeholder=raw)
        value = _lookup(expr, meta, node)
        if value is None:
            raise TemplateError(
                node.path, f"undefined placeholder '{expr}'", index=index, placeholder=raw
            )
        out.append(text[pos:start])
        out.append(value)
        pos = end + 2


def render_env(overlay: Dict[str, str], meta: RootMeta, node: Target) -> Dict[str, str]:
    return {key: render(value, meta, node) for key, value in overlay.items()}
