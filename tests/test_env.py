"""Tests for environment composition."""

import pytest

from yake.env import effective_env, overlay_chain
from yake.errors import TemplateError


class TestEffectiveEnv:
    """Overlay composition root -> group -> callable."""

    def test_postgres_environment(self, example_tree):
        env = effective_env(example_tree, example_tree.resolve("docker.postgres"), base={})
        assert env["POSTGRES_PORT"] == "8765"
        assert env["WEBAPP_PORT"] == "6543"
        assert env["MAIN"] == "XXX"
        assert "BLA" not in env

    def test_ambient_environment_is_lowest_priority(self, example_tree):
        node = example_tree.resolve("docker.postgres")
        env = effective_env(example_tree, node, base={"MAIN": "ambient", "HOME": "/home/x"})
        assert env["MAIN"] == "XXX"
        assert env["HOME"] == "/home/x"

    def test_sibling_overlays_do_not_leak(self, example_tree):
        env = effective_env(example_tree, example_tree.resolve("docker2"), base={})
        assert env == {"MAIN": "XXX"}

    def test_every_chain_key_present_deepest_wins(self, make_tree):
        tree = make_tree(
            """
meta: {doc: d, version: '1'}
env: {A: root, B: root, C: root}
targets:
  g:
    meta: {doc: g, type: group}
    env: {B: group, D: group}
    targets:
      h:
        meta: {doc: h, type: group}
        env: {C: inner}
        targets:
          leaf:
            meta: {doc: leaf, type: callable}
            env: {D: leaf}
"""
        )
        env = overlay_chain(tree, tree.resolve("g.h.leaf"))
        assert env == {"A": "root", "B": "group", "C": "inner", "D": "leaf"}

    def test_does_not_mutate_base(self, example_tree):
        base = {"X": "1"}
        effective_env(example_tree, example_tree.resolve("base"), base=base)
        assert base == {"X": "1"}

    def test_idempotent(self, example_tree):
        node = example_tree.resolve("docker.postgres")
        first = effective_env(example_tree, node, base={"X": "1"})
        second = effective_env(example_tree, node, base={"X": "1"})
        assert first == second

    def test_values_are_rendered_with_owning_level(self, make_tree):
        tree = make_tree(
            """
meta: {doc: d, version: 2.1.0}
env: {VERSION: "v{{meta.version}}"}
targets:
  g:
    meta: {doc: g, type: group}
    env: {WHERE: "{{target.path}}"}
    targets:
      leaf:
        meta: {doc: leaf, type: callable}
"""
        )
        env = overlay_chain(tree, tree.resolve("g.leaf"))
        assert env == {"VERSION": "v2.1.0", "WHERE": "g"}

    def test_bad_placeholder_in_env(self, make_tree):
        tree = make_tree(
            """
meta: {doc: d, version: '1'}
env: {X: "{{meta.nope}}"}
targets:
  a:
    meta: {doc: a, type: callable}
"""
        )
        with pytest.raises(TemplateError):
            overlay_chain(tree, tree.resolve("a"))
