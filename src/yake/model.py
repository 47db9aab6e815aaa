# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional

from .errors import ConfigError, ResolutionError


class TargetType(str, Enum):
    """Tag of a target: a namespace of targets or an executable leaf."""
    GROUP = "group"
    CALLABLE = "callable"


@dataclass(frozen=True)
class RootMeta:
    """
    Global (document root) metadata.

    `extra` keeps any further scalar fields of the root `meta` mapping so
    templates can address them as `{{meta.<field>}}`.
    """
    doc: str
    version: str
    include_recursively: bool = False
    extra: Dict[str, str] = field(default_factory=dict)

    def lookup(self, name: str) -> Optional[str]:
        if name in ("doc", "version"):
            return getattr(self, name)
        if name == "include_recursively":
            return str(self.include_recursively).lower()
        return self.extra.get(name)


@dataclass
class Target:
    """
    A node of the target tree.

    One class for both variants, tagged by `kind`:
      - GROUP: `children` maps child name -> node id (declaration order),
        `steps` and `depends` are empty
      - CALLABLE: `steps` holds the exec entries, `depends` the raw dotted
        references, `children` is empty

    The root is a GROUP with id 0, an empty name and an empty path.
    """
    id: int
    name: str
    path: str
    kind: TargetType
    doc: str
    parent: Optional[int] = None
    env: Dict[str, str] = field(default_factory=dict)
    children: Dict[str, int] = field(default_factory=dict)
    steps: List[str] = field(default_factory=list)
    depends: List[str] = field(default_factory=list)

    @property
    def is_callable(self) -> bool:
        return self.kind is TargetType.CALLABLE


class Tree:
    """
    Flattened node table of a loaded Yakefile.

    Nodes are addressed by integer id (their index in `nodes`). Dependency
    references are resolved to ids once, by `link()`, after the whole tree
    has been loaded; graph algorithms work on those ids.
    """

    def __init__(self, meta: RootMeta, env: Optional[Dict[str, str]] = None):
        self.meta = meta
        self.nodes: List[Target] = []
        self._by_path: Dict[str, int] = {}
        self._deps: Dict[int, List[int]] = {}
        self._linked = False
        self._add(Target(id=0, name="", path="", kind=TargetType.GROUP,
                         doc=meta.doc, env=dict(env or {})))

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _add(self, node: Target) -> Target:
        self.nodes.append(node)
        self._by_path[node.path] = node.id
        return node

    def add(
        self,
        parent: Target,
        name: str,
        kind: TargetType,
        doc: str = "",
        env: Optional[Dict[str, str]] = None,
        steps: Optional[List[str]] = None,
        depends: Optional[List[str]] = None,
    ) -> Target:
        if parent.kind is not TargetType.GROUP:
            raise ConfigError(parent.path, f"callable target cannot have child '{name}'")
        if not name or "." in name:
            raise ConfigError(parent.path, f"invalid target name {name!r}")
        if name in parent.children:
            raise ConfigError(parent.path, f"duplicate target name '{name}'")

        path = f"{parent.path}.{name}" if parent.path else name
        node = Target(
            id=len(self.nodes),
            name=name,
            path=path,
            kind=kind,
            doc=doc,
            parent=parent.id,
            env=dict(env or {}),
            steps=list(steps or []),
            depends=list(depends or []),
        )
        parent.children[name] = node.id
        self._linked = False
        return self._add(node)

    def link(self) -> None:
        """
        Resolve every `depends` entry to a node id.

        Raises ResolutionError for a reference that does not exist and
        ConfigError for a reference to a group (groups have nothing to run).
        """
        deps: Dict[int, List[int]] = {}
        for node in self.nodes:
            if not node.is_callable:
                continue
            ids: List[int] = []
            for i, ref in enumerate(node.depends):
                try:
                    dep = self.resolve(ref)
                except ResolutionError as e:
                    raise ResolutionError(
                        node.path,
                        f"unknown dependency '{ref}'",
                        index=i,
                        available=e.available,
                    ) from None
                if not dep.is_callable:
                    raise ConfigError(
                        node.path,
                        f"dependency '{ref}' is a group; only callable targets can be depended upon",
                        index=i,
                    )
                if dep.id not in ids:
                    ids.append(dep.id)
            deps[node.id] = ids
        self._deps = deps
        self._linked = True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def root(self) -> Target:
        return self.nodes[0]

    def get(self, node_id: int) -> Target:
        return self.nodes[node_id]

    def resolve(self, path: str) -> Target:
        """
        Resolve an absolute dotted path (e.g. `docker3.mysql2.mysqlsub`).

        The empty path is the root.
        """
        node = self.root
        if path == "":
            return node

        walked: List[str] = []
        for segment in path.split("."):
            child = node.children.get(segment) if segment else None
            if child is None:
                where = ".".join(walked) or "<root>"
                reason = (
                    f"'{where}' is a callable and has no targets"
                    if node.is_callable
                    else f"'{where}' has no target '{segment}'"
                )
                raise ResolutionError(
                    path,
                    f"unknown target '{path}': {reason}",
                    available=self.callable_paths(),
                )
            node = self.nodes[child]
            walked.append(segment)
        return node

    def type_of(self, node: Target) -> TargetType:
        return node.kind

    def children_of(self, node: Target) -> List[Target]:
        return [self.nodes[i] for i in node.children.values()]

    def parent_of(self, node: Target) -> Optional[Target]:
        return None if node.parent is None else self.nodes[node.parent]

    def ancestors(self, node: Target) -> List[Target]:
        """Root-to-node chain, both ends inclusive."""
        chain: List[Target] = []
        current: Optional[Target] = node
        while current is not None:
            chain.append(current)
            current = self.parent_of(current)
        chain.reverse()
        return chain

    def path_of(self, node: Target) -> str:
        """Re-derive a node's dotted path from the parent links."""
        return ".".join(n.name for n in self.ancestors(node)[1:])

    def walk(self, node: Optional[Target] = None) -> Iterator[Target]:
        """Depth-first, declaration order, starting at `node` (default root)."""
        stack = [node or self.root]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(self.children_of(current)))

    def callables(self) -> List[Target]:
        return [n for n in self.walk() if n.is_callable]

    def callable_paths(self) -> List[str]:
        return [n.path for n in self.callables()]

    def dependencies(self, node: Target) -> List[Target]:
        """Resolved direct dependencies of a callable, in declaration order."""
        if not self._linked:
            self.link()
        return [self.nodes[i] for i in self._deps.get(node.id, [])]
