"""Tests for entry point resolution."""

import os

import pytest

from esmgen.errors import EntryNotFound
from esmgen.pipeline.entry import (
    DEFAULT_RULES,
    DescriptorFieldsRule,
    ExportsRule,
    existing_candidate,
    resolve_entry,
)


class TestRuleOrdering:
    """The rule chain prefers earlier conventions."""

    def _all_four(self, package_dir):
        return package_dir({
            "package.json": {
                "name": "demo",
                "main": "lib/main.js",
                "exports": {"default": "./esm/default.js"},
            },
            "esm/default.js": "export default 1;",
            "dist/index.js": "module.exports = 2;",
            "lib/main.js": "module.exports = 3;",
            "index.js": "module.exports = 4;",
        })

    def test_exports_default_wins_over_everything(self, package_dir):
        root = self._all_four(package_dir)

        result = resolve_entry(str(root))

        assert result.chosen_path == os.path.join(str(root), "esm", "default.js")
        assert result.rule == "exports"

    def test_dist_wins_over_main(self, package_dir):
        root = self._all_four(package_dir)
        os.remove(root / "esm" / "default.js")

        assert resolve_entry(str(root)).chosen_path == os.path.join(str(root), "dist", "index.js")

    def test_main_wins_over_bare_index(self, package_dir):
        root = self._all_four(package_dir)
        os.remove(root / "esm" / "default.js")
        os.remove(root / "dist" / "index.js")

        result = resolve_entry(str(root))

        assert result.chosen_path == os.path.join(str(root), "lib", "main.js")
        assert result.rule == "fields"

    def test_bare_index_is_last_resort(self, package_dir):
        root = self._all_four(package_dir)
        os.remove(root / "esm" / "default.js")
        os.remove(root / "dist" / "index.js")
        os.remove(root / "lib" / "main.js")

        result = resolve_entry(str(root))

        assert result.chosen_path == os.path.join(str(root), "index.js")
        assert result.rule == "fallback"

    def test_rule_names_follow_documented_order(self):
        assert [rule.name for rule in DEFAULT_RULES] == ["exports", "dist", "fields", "fallback"]


class TestExportsRule:
    """Candidates from the exports map."""

    def test_default_before_require(self):
        rule = ExportsRule()
        descriptor = {"exports": {"require": "./cjs.js", "default": "./def.js"}}
        assert rule.candidates(descriptor) == ["./def.js", "./cjs.js"]

    def test_list_values_keep_order(self):
        rule = ExportsRule()
        descriptor = {"exports": {"default": ["./a.js", "./b.js"], "require": ["./c.js"]}}
        assert rule.candidates(descriptor) == ["./a.js", "./b.js", "./c.js"]

    def test_string_and_subpath_forms(self):
        rule = ExportsRule()
        assert rule.candidates({"exports": "./index.mjs"}) == ["./index.mjs"]
        assert rule.candidates({"exports": {".": "./main.js"}}) == ["./main.js"]
        assert rule.candidates({"exports": {".": {"default": "./d.js"}}}) == ["./d.js"]

    def test_missing_or_unusable_exports(self):
        rule = ExportsRule()
        assert rule.candidates({}) == []
        assert rule.candidates({"exports": {"import": {"types": "./x.d.ts"}}}) == []

    def test_require_used_when_default_file_missing(self, package_dir):
        root = package_dir({
            "package.json": {"exports": {"default": "./missing.js", "require": "./cjs/index.js"}},
            "cjs/index.js": "module.exports = {};",
        })
        assert resolve_entry(str(root)).chosen_path == os.path.join(str(root), "cjs", "index.js")


class TestDescriptorFields:
    """source/main handling."""

    def test_source_before_main(self, package_dir):
        root = package_dir({
            "package.json": {"source": "src/index.ts", "main": "lib/index.js"},
            "src/index.ts": "export const x = 1;",
            "lib/index.js": "exports.x = 1;",
        })
        assert resolve_entry(str(root)).chosen_path == os.path.join(str(root), "src", "index.ts")

    def test_extensionless_main_is_probed(self, package_dir):
        root = package_dir({
            "package.json": {"main": "lib/left-pad"},
            "lib/left-pad.js": "module.exports = 1;",
        })
        assert resolve_entry(str(root)).chosen_path == os.path.join(str(root), "lib", "left-pad.js")

    def test_directory_main_resolves_index(self, package_dir):
        root = package_dir({
            "package.json": {"main": "lib"},
            "lib/index.js": "module.exports = 1;",
        })
        assert resolve_entry(str(root)).chosen_path == os.path.join(str(root), "lib", "index.js")

    def test_candidates_with_extension_are_not_probed(self):
        assert DescriptorFieldsRule(("main",)).candidates({"main": "index.js"}) == ["index.js"]


class TestPermissiveAndStrict:
    """Absent entries."""

    def test_index_ts_fallback(self, package_dir):
        root = package_dir({"package.json": {}, "index.ts": "export {};"})
        assert resolve_entry(str(root)).chosen_path == os.path.join(str(root), "index.ts")

    def test_permissive_returns_empty_resolution(self, package_dir):
        root = package_dir({"package.json": {"name": "styles-only"}, "theme.css": "body{}"})

        result = resolve_entry(str(root))

        assert result.chosen_path is None
        assert not result.found

    def test_strict_raises_entry_not_found(self, package_dir):
        root = package_dir({"package.json": {"name": "styles-only"}})
        with pytest.raises(EntryNotFound):
            resolve_entry(str(root), strict=True)

    def test_unreadable_descriptor_falls_back(self, package_dir):
        root = package_dir({"package.json": "{not json", "index.js": ""})
        assert resolve_entry(str(root)).chosen_path == os.path.join(str(root), "index.js")


class TestExistingCandidate:
    """Candidate filtering."""

    def test_candidates_outside_root_are_ignored(self, tmp_path):
        root = tmp_path / "pkg"
        root.mkdir()
        (tmp_path / "outside.js").write_text("")

        assert existing_candidate(str(root), ["../outside.js"]) is None

    def test_directories_are_not_files(self, tmp_path):
        (tmp_path / "dist").mkdir()
        assert existing_candidate(str(tmp_path), ["dist"]) is None
