"""Tests for Yakefile loading and validation."""

import pytest

from yake.errors import ConfigError, ResolutionError
from yake.loader import find_sub_yakefiles, load_string, load_yakefile
from yake.model import TargetType

MINIMAL = """
meta:
  doc: "Some docs"
  version: 1.0.0
targets:
  base:
    meta:
      doc: "Test command"
      type: callable
    exec:
      - echo "i'm base"
  group:
    meta:
      doc: "Test group"
      type: group
"""


class TestLoadString:
    """Parsing a document into a tree."""

    def test_target_types(self):
        tree = load_string(MINIMAL)
        assert tree.resolve("base").kind is TargetType.CALLABLE
        assert tree.resolve("group").kind is TargetType.GROUP

    def test_root_meta(self):
        tree = load_string(MINIMAL)
        assert tree.meta.doc == "Some docs"
        assert tree.meta.version == "1.0.0"
        assert tree.meta.include_recursively is False

    def test_exec_steps_kept_in_order(self, example_tree):
        steps = example_tree.resolve("docker.postgres").steps
        assert len(steps) == 5
        assert steps[0].startswith("echo \"postgres")
        assert "for i in 1 2 3" in steps[3]

    def test_unquoted_env_values_become_strings(self, example_tree):
        assert example_tree.resolve("docker").env == {"WEBAPP_PORT": "6543"}
        assert example_tree.resolve("docker.postgres").env == {"POSTGRES_PORT": "8765"}

    def test_extra_root_meta_fields(self):
        tree = load_string(MINIMAL.replace("version: 1.0.0", "version: 1.0.0\n  author: me"))
        assert tree.meta.lookup("author") == "me"

    def test_invalid_yaml(self):
        with pytest.raises(ConfigError, match="invalid YAML"):
            load_string("meta: [unclosed")


class TestStructuralErrors:
    """Documents the loader must reject."""

    def _doc(self, targets):
        return "meta:\n  doc: d\n  version: '1'\ntargets:\n" + targets

    def test_missing_version(self):
        with pytest.raises(ConfigError, match="meta.version"):
            load_string("meta:\n  doc: d\ntargets: {}\n")

    def test_missing_targets(self):
        with pytest.raises(ConfigError, match="'targets' is required"):
            load_string("meta:\n  doc: d\n  version: '1'\n")

    def test_unknown_type(self):
        with pytest.raises(ConfigError, match="unknown target type") as exc_info:
            load_string(self._doc("  a:\n    meta: {doc: x, type: command}\n"))
        assert exc_info.value.path == "a"

    def test_missing_type(self):
        with pytest.raises(ConfigError, match="meta.type"):
            load_string(self._doc("  a:\n    meta: {doc: x}\n"))

    def test_callable_with_targets(self):
        text = self._doc(
            "  a:\n    meta: {doc: x, type: callable}\n    targets:\n"
            "      b:\n        meta: {doc: y, type: callable}\n"
        )
        with pytest.raises(ConfigError, match="must not have 'targets'"):
            load_string(text)

    def test_group_with_exec(self):
        text = self._doc("  g:\n    meta: {doc: x, type: group}\n    exec: [echo hi]\n")
        with pytest.raises(ConfigError, match="must not have 'exec'"):
            load_string(text)

    def test_group_with_depends(self):
        text = self._doc("  g:\n    meta: {doc: x, type: group, depends: [g]}\n")
        with pytest.raises(ConfigError, match="meta.depends"):
            load_string(text)

    def test_exec_must_be_list_of_strings(self):
        text = self._doc("  a:\n    meta: {doc: x, type: callable}\n    exec: [echo, [nested]]\n")
        with pytest.raises(ConfigError) as exc_info:
            load_string(text)
        assert exc_info.value.index == 1

    def test_env_must_be_mapping(self):
        text = self._doc("  a:\n    meta: {doc: x, type: callable}\n    env: [A, B]\n")
        with pytest.raises(ConfigError, match="env must be a mapping"):
            load_string(text)

    def test_unknown_key(self):
        text = self._doc("  a:\n    meta: {doc: x, type: callable}\n    run: [echo]\n")
        with pytest.raises(ConfigError, match="unknown target key"):
            load_string(text)

    def test_nested_error_reports_full_path(self):
        text = self._doc(
            "  g:\n    meta: {doc: x, type: group}\n    targets:\n"
            "      sub:\n        meta: {doc: y, type: group}\n        exec: [echo]\n"
        )
        with pytest.raises(ConfigError) as exc_info:
            load_string(text)
        assert exc_info.value.path == "g.sub"

    @pytest.mark.parametrize("key", ["PATH", "HOME", "TERM", "TZ", "LANG"])
    def test_forbidden_env_variables(self, key):
        text = "meta:\n  doc: d\n  version: '1'\nenv:\n  %s: $HOME/bin:$PATH\ntargets: {}\n" % key
        with pytest.raises(ConfigError, match="may not be overridden"):
            load_string(text)

    def test_unknown_dependency(self):
        text = self._doc("  a:\n    meta: {doc: x, type: callable, depends: [nope]}\n")
        with pytest.raises(ResolutionError, match="unknown dependency 'nope'") as exc_info:
            load_string(text)
        assert exc_info.value.path == "a"
        assert exc_info.value.index == 0

    def test_duplicate_sibling_target(self):
        text = self._doc(
            "  base:\n    meta: {doc: first, type: callable}\n    exec: [echo one]\n"
            "  base:\n    meta: {doc: second, type: group}\n"
        )
        with pytest.raises(ConfigError, match="duplicate key 'base'") as exc_info:
            load_string(text)
        assert exc_info.value.path == ""
        assert exc_info.value.details["line"] == "8"
        assert exc_info.value.details["first"] == "5"

    def test_duplicate_nested_target_reports_parent_path(self):
        text = self._doc(
            "  g:\n    meta: {doc: x, type: group}\n    targets:\n"
            "      a:\n        meta: {doc: y, type: callable}\n"
            "      a:\n        meta: {doc: z, type: callable}\n"
        )
        with pytest.raises(ConfigError, match="duplicate key 'a'") as exc_info:
            load_string(text)
        assert exc_info.value.path == "g"

    def test_duplicate_env_key(self):
        text = self._doc("  a:\n    meta: {doc: x, type: callable}\n    env: {PORT: 1, PORT: 2}\n")
        with pytest.raises(ConfigError, match="duplicate key 'PORT'") as exc_info:
            load_string(text)
        assert exc_info.value.path == "a"


class TestLoadYakefile:
    """Files on disk and sub-Yakefile inclusion."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="cannot read"):
            load_yakefile(tmp_path / "Yakefile")

    def test_load_from_file(self, write_yakefile):
        tree = load_yakefile(write_yakefile(MINIMAL))
        assert tree.callable_paths() == ["base"]

    def test_duplicate_target_in_file_names_the_file(self, write_yakefile):
        path = write_yakefile(MINIMAL + MINIMAL[MINIMAL.index("targets:") + len("targets:\n"):])
        with pytest.raises(ConfigError, match="duplicate key 'base'") as exc_info:
            load_yakefile(path)
        assert exc_info.value.details["file"] == str(path)

    def test_find_sub_yakefiles(self, tmp_path, write_yakefile):
        write_yakefile(MINIMAL)
        write_yakefile(MINIMAL, tmp_path / "b")
        write_yakefile(MINIMAL, tmp_path / "a")
        write_yakefile(MINIMAL, tmp_path / "a" / "deeper")
        found = find_sub_yakefiles(tmp_path)
        assert [p.parent.name for p in found] == ["a", "b"]

    def test_include_recursively(self, tmp_path, write_yakefile):
        root = write_yakefile(MINIMAL.replace("version: 1.0.0", "version: 1.0.0\n  include_recursively: true"))
        write_yakefile(
            """
meta:
  doc: "Sub docs"
  version: 1.0.0
targets:
  base:
    meta:
      doc: "Test command overwritten"
      type: callable
    exec:
      - echo "i'm base, but overwritten by a sub yake"
  sub_base:
    meta:
      doc: "Sub: Test command"
      type: callable
    exec:
      - echo "i'm sub base"
""",
            tmp_path / "sub",
        )
        tree = load_yakefile(root)
        assert tree.resolve("base").doc == "Test command overwritten"
        assert tree.resolve("sub_base").kind is TargetType.CALLABLE
        assert tree.resolve("group").kind is TargetType.GROUP

    def test_sub_yakefiles_ignored_without_flag(self, tmp_path, write_yakefile):
        root = write_yakefile(MINIMAL)
        write_yakefile(MINIMAL.replace("base:", "other:"), tmp_path / "sub")
        tree = load_yakefile(root)
        with pytest.raises(ResolutionError):
            tree.resolve("other")
