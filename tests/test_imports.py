"""Tests for import extraction and internal/external classification."""

from __future__ import annotations

from monoinject.scanner.imports import (
    alias_paths,
    classify,
    extract_imports,
    find_dependencies,
    is_resolvable,
    normalize_module_name,
    strip_comments,
)

ROOT_PKG = {"dependencies": {"@acme/shared": "^1.0.0"}}


class TestExtractImports:
    def test_import_forms(self):
        source = "\n".join(
            [
                "import a from 'default-import';",
                'import { b, c } from "named";',
                "import React, { useState } from 'react';",
                "import * as ns from 'namespace';",
                "import type { T } from 'types-only';",
                "export * from 'reexport-all';",
                "export { d } from 'reexport-named';",
                "import './side-effect';",
                "const e = require('required');",
                "const f = await import('dynamic');",
            ]
        )
        assert extract_imports(source) == [
            "default-import",
            "named",
            "react",
            "namespace",
            "types-only",
            "reexport-all",
            "reexport-named",
            "./side-effect",
            "required",
            "dynamic",
        ]

    def test_multiline_import(self):
        source = "import {\n  a,\n  b,\n} from '@scope/multi';\n"
        assert extract_imports(source) == ["@scope/multi"]

    def test_comments_are_ignored(self):
        source = (
            "// import x from 'line-comment'\n"
            "/* const y = require('block-comment') */\n"
            "import z from 'real';\n"
        )
        assert extract_imports(source) == ["real"]

    def test_comment_markers_inside_strings_survive(self):
        source = "const url = 'http://example.com';\nimport a from 'after-url';\n"
        assert extract_imports(source) == ["after-url"]

    def test_computed_targets_skipped(self):
        source = "require(`./${name}`);\nrequire('a' + b);\n"
        assert extract_imports(source) == []

    def test_member_call_not_an_import(self):
        assert extract_imports("loader.import('thing'); myrequire('other');") == []

    def test_identifier_starting_with_type(self):
        assert extract_imports("import typeorm from 'typeorm';") == ["typeorm"]

    def test_strip_comments_keeps_template_literals(self):
        assert strip_comments("`// not a comment` // gone") == "`// not a comment` "


class TestNormalize:
    def test_scoped_subpath(self):
        assert normalize_module_name("@scope/pkg/sub/path") == "@scope/pkg"

    def test_plain_subpath(self):
        assert normalize_module_name("pkg/sub/path") == "pkg"

    def test_bare(self):
        assert normalize_module_name("lodash") == "lodash"

    def test_is_resolvable(self):
        assert not is_resolvable("./local")
        assert not is_resolvable("../up")
        assert not is_resolvable("@/alias")
        assert not is_resolvable("$lib")
        assert not is_resolvable("@ns/self", self_name="@ns/self")
        assert is_resolvable("lodash")


class TestClassify:
    def test_root_dependency_is_internal(self):
        assert classify("@acme/shared", ROOT_PKG, {}) == "internal"

    def test_dev_and_peer_fields_count(self):
        root = {"devDependencies": {"dev-lib": "1"}, "peerDependencies": {"peer-lib": "1"}}
        assert classify("dev-lib", root, {}) == "internal"
        assert classify("peer-lib", root, {}) == "internal"

    def test_alias_is_internal(self):
        assert classify("@acme/aliased", {}, {"@acme/aliased": ["packages/x/src/index.ts"]}) == "internal"

    def test_unknown_is_external(self):
        assert classify("lodash", ROOT_PKG, {}) == "external"

    def test_alias_paths(self):
        assert alias_paths({"compilerOptions": {"paths": {"a": ["x"]}}}) == {"a": ["x"]}
        assert alias_paths(None) == {}
        assert alias_paths({}) == {}


class TestFindDependencies:
    def test_classification_fixture(self):
        source = (
            "import { helper } from './local';\n"
            "import { shared } from '@acme/shared';\n"
            "import lodash from 'lodash';\n"
        )
        internal, external = find_dependencies(source, ROOT_PKG, {})
        assert sorted(internal) == ["@acme/shared"]
        assert sorted(external) == ["lodash"]
        assert "./local" not in internal | external

    def test_subpath_collapses_to_package(self):
        source = "import a from '@acme/shared/utils';\nimport b from 'lodash/fp';\n"
        internal, external = find_dependencies(source, ROOT_PKG, {})
        assert internal == {"@acme/shared"}
        assert external == {"lodash"}

    def test_self_reference_dropped(self):
        source = "import x from '@ns/me/sub';\n"
        internal, external = find_dependencies(source, {}, {}, self_name="@ns/me")
        assert internal == set()
        assert external == set()
