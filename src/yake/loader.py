# loader.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from . import settings
from .errors import ConfigError
from .model import RootMeta, Target, TargetType, Tree

ROOT_KEYS = {"meta", "env", "targets"}
TARGET_KEYS = {"meta", "env", "exec", "targets"}
TARGET_META_KEYS = {"doc", "type", "depends"}


# ----------------------------------------------------------------------
# Field coercion
# ----------------------------------------------------------------------

def _scalar(value: Any, path: str, what: str) -> str:
    # YAML hands back ints/floats/bools for unquoted values like `8765`
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ConfigError(path, f"{what} must be a string, got {type(value).__name__}")


def _mapping(value: Any, path: str, what: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(path, f"{what} must be a mapping, got {type(value).__name__}")
    return value


def _string_list(value: Any, path: str, what: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(path, f"{what} must be a list, got {type(value).__name__}")
    out: List[str] = []
    for i, item in enumerate(value):
        if not isinstance(item, str):
            raise ConfigError(path, f"{what} entries must be strings", index=i)
        out.append(item)
    return out


def _env(value: Any, path: str) -> Dict[str, str]:
    env: Dict[str, str] = {}
    for key, raw in _mapping(value, path, "env").items():
        key = str(key)
        if key in settings.FORBIDDEN_ENV:
            raise ConfigError(
                path,
                f"env variable '{key}' may not be overridden",
                details={"forbidden": ", ".join(settings.FORBIDDEN_ENV)},
            )
        if raw is None:
            raise ConfigError(path, f"env variable '{key}' has no value")
        env[key] = _scalar(raw, path, f"env variable '{key}'")
    return env


def _check_keys(data: Mapping[str, Any], allowed: set, path: str, what: str) -> None:
    unknown = sorted(str(k) for k in data if k not in allowed)
    if unknown:
        raise ConfigError(path, f"unknown {what} key(s): {', '.join(unknown)}")


# ----------------------------------------------------------------------
# Tree construction
# ----------------------------------------------------------------------

def _root_meta(data: Any) -> RootMeta:
    meta = _mapping(data, "", "meta")
    for required in ("doc", "version"):
        if meta.get(required) is None:
            raise ConfigError("", f"meta.{required} is required")

    extra = {
        str(k): _scalar(v, "", f"meta.{k}")
        for k, v in meta.items()
        if k not in ("doc", "version", "include_recursively")
    }
    include = meta.get("include_recursively", False)
    if not isinstance(include, bool):
        raise ConfigError("", "meta.include_recursively must be a boolean")

    return RootMeta(
        doc=_scalar(meta["doc"], "", "meta.doc"),
        version=_scalar(meta["version"], "", "meta.version"),
        include_recursively=include,
        extra=extra,
    )


def _add_target(tree: Tree, parent: Target, name: str, data: Any) -> None:
    path = f"{parent.path}.{name}" if parent.path else name
    data = _mapping(data, path, "target")
    _check_keys(data, TARGET_KEYS, path, "target")

    meta = _mapping(data.get("meta"), path, "meta")
    _check_keys(meta, TARGET_META_KEYS, path, "meta")
    if "type" not in meta:
        raise ConfigError(path, "meta.type is required")
    try:
        kind = TargetType(meta["type"])
    except ValueError:
        raise ConfigError(
            path,
            f"unknown target type {meta['type']!r}, expected 'callable' or 'group'",
        ) from None

    doc = _scalar(meta.get("doc", ""), path, "meta.doc")
    env = _env(data.get("env"), path)

    if kind is TargetType.CALLABLE:
        if "targets" in data:
            raise ConfigError(path, "callable target must not have 'targets'")
        tree.add(
            parent,
            name,
            kind,
            doc=doc,
            env=env,
            steps=_string_list(data.get("exec"), path, "exec"),
            depends=_string_list(meta.get("depends"), path, "meta.depends"),
        )
        return

    if "exec" in data:
        raise ConfigError(path, "group target must not have 'exec'")
    if "depends" in meta:
        raise ConfigError(path, "group target must not have 'meta.depends'")
    group = tree.add(parent, name, kind, doc=doc, env=env)
    for child_name, child in _mapping(data.get("targets"), path, "targets").items():
        _add_target(tree, group, str(child_name), child)


def build_tree(document: Any) -> Tree:
    """
    Build and link a Tree from a parsed Yakefile document.

    Raises ConfigError for structural problems and ResolutionError for
    `depends` entries that do not resolve.
    """
    if not isinstance(document, Mapping):
        raise ConfigError("", "Yakefile must contain a mapping at the top level")
    _check_keys(document, ROOT_KEYS, "", "top-level")
    if "targets" not in document:
        raise ConfigError("", "'targets' is required")

    tree = Tree(_root_meta(document.get("meta")), env=_env(document.get("env"), ""))
    for name, data in _mapping(document["targets"], "", "targets").items():
        _add_target(tree, tree.root, str(name), data)
    tree.link()
    return tree


# ----------------------------------------------------------------------
# YAML
# ----------------------------------------------------------------------

def _target_path(keys: tuple) -> str:
    """Dotted target path of a mapping reached through `keys` from the root."""
    names = []
    i = 0
    while i < len(keys):
        if keys[i] == "targets" and i + 1 < len(keys):
            names.append(keys[i + 1])
            i += 2
        else:
            i += 1
    return ".".join(names)


def _check_unique_keys(node: yaml.Node, keys: tuple = (), visited: Optional[set] = None) -> None:
    # aliases share node objects and may be recursive
    visited = set() if visited is None else visited
    if id(node) in visited:
        return
    visited.add(id(node))
    if isinstance(node, yaml.MappingNode):
        seen: Dict[str, int] = {}
        for key_node, value_node in node.value:
            if not isinstance(key_node, yaml.ScalarNode):
                _check_unique_keys(value_node, keys, visited)
                continue
            key = key_node.value
            line = key_node.start_mark.line + 1
            if key in seen and key != "<<":
                raise ConfigError(
                    _target_path(keys),
                    f"duplicate key '{key}'",
                    details={"line": str(line), "first": str(seen[key])},
                )
            seen.setdefault(key, line)
            _check_unique_keys(value_node, keys + (key,), visited)
    elif isinstance(node, yaml.SequenceNode):
        for item in node.value:
            _check_unique_keys(item, keys, visited)


class YakefileLoader(yaml.SafeLoader):
    """SafeLoader that rejects a repeated key in any mapping instead of keeping the last one."""

    def construct_document(self, node):
        _check_unique_keys(node)
        return super().construct_document(node)


def parse_yaml(text: str, source: str = "<string>") -> Any:
    try:
        return yaml.load(text, Loader=YakefileLoader)
    except yaml.YAMLError as e:
        raise ConfigError("", f"invalid YAML in {source}", details={"error": str(e)}) from e
    except ConfigError as e:
        e.details.setdefault("file", source)
        raise


# ----------------------------------------------------------------------
# Files
# ----------------------------------------------------------------------

def _read_document(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError("", f"cannot read {path}: {e.strerror or e}") from e
    return parse_yaml(text, str(path))


def find_sub_yakefiles(directory: str | Path, filename: str = "Yakefile") -> List[Path]:
    """Yakefiles exactly one directory below `directory`, sorted."""
    base = Path(directory)
    return sorted(p for p in base.glob(f"*/{filename}") if p.is_file())


def load_document(path: str | Path) -> Dict[str, Any]:
    """
    Read a Yakefile and, if its root `meta.include_recursively` is true, merge
    the top-level targets of every sub-Yakefile into it. Sub-Yakefile targets
    replace same-named targets; their meta and env are ignored.
    """
    path = Path(path)
    document = _read_document(path)
    if not isinstance(document, dict):
        raise ConfigError("", f"{path} must contain a mapping at the top level")

    meta = document.get("meta") or {}
    if isinstance(meta, Mapping) and meta.get("include_recursively") is True:
        targets = dict(_mapping(document.get("targets"), "", "targets"))
        for sub in find_sub_yakefiles(path.parent, path.name):
            sub_document = _read_document(sub)
            if not isinstance(sub_document, Mapping):
                raise ConfigError("", f"{sub} must contain a mapping at the top level")
            targets.update(_mapping(sub_document.get("targets"), "", f"targets of {sub}"))
        document["targets"] = targets
    return document


def load_yakefile(path: str | Path = settings.YAKEFILE) -> Tree:
    return build_tree(load_document(path))


def load_string(text: str) -> Tree:
    """Build a Tree straight from YAML text (no sub-Yakefile inclusion)."""
    return build_tree(parse_yaml(text))
