# env.py
from __future__ import annotations

import os
from typing import Dict, Mapping, Optional

from .model import Target, Tree
from .template import render_env


def snapshot_environ() -> Dict[str, str]:
    """Copy of the process environment, taken once and never written back."""
    return dict(os.environ)


def overlay_chain(tree: Tree, node: Target) -> Dict[str, str]:
    """
    Overlays of root -> ... -> node, deeper levels winning on collision.

    Each level's values are rendered with that level as template scope.
    """
    env: Dict[str, str] = {}
    for level in tree.ancestors(node):
        env.update(render_env(level.env, tree.meta, level))
    return env


def effective_env(
    tree: Tree,
    node: Target,
    base: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """
    Environment a callable's steps run with.

    `base` is the ambient process environment (lowest priority), snapshotted
    now if not given. Variables defined nowhere are simply absent; the shell
    expands them to "".
    """
    env = dict(base) if base is not None else snapshot_environ()
    env.update(overlay_chain(tree, node))
    return env
