from __future__ import annotations

import warnings
from typing import TYPE_CHECKING

import pathspec
import pytest

from code_packer import patterns
from code_packer.config import PatternSet
from code_packer.patterns import matches, normalize_globs, should_include

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


def make_set(exclusions: list[str] | None = None, inclusions: list[str] | None = None) -> PatternSet:
    return PatternSet(
        exclusion_patterns=tuple(exclusions or ()),
        inclusion_patterns=tuple(inclusions or ()),
    )


@pytest.mark.unit
def test_normalize_globs_strips_and_normalizes() -> None:
    globs = ["  src/**/*.py ", "tests\\*.py", "", "./docs/*.md", "   "]

    assert normalize_globs(globs) == ["src/**/*.py", "tests/*.py", "docs/*.md"]


@pytest.mark.unit
def test_exclusion_wins_over_inclusion() -> None:
    ps = make_set(exclusions=["*.test.ts"], inclusions=["*.ts"])

    assert should_include("src/foo.test.ts", ps) is False
    assert should_include("src/foo.ts", ps) is True
    assert should_include("src/foo.js", ps) is False


@pytest.mark.unit
@pytest.mark.parametrize("rel", ["a.txt", "src/deep/nested/file.py", "Makefile"])
def test_empty_inclusion_keeps_every_non_excluded_path(rel: str) -> None:
    assert should_include(rel, make_set(exclusions=["*.log"])) is True
    assert should_include(rel, make_set()) is True


@pytest.mark.unit
def test_basename_pattern_matches_at_any_depth() -> None:
    assert matches("foo.ts", "*.ts")
    assert matches("src/a/b/foo.ts", "*.ts")
    assert not matches("src/foo.tsx", "*.ts")


@pytest.mark.unit
def test_anchored_pattern_star_does_not_cross_directories() -> None:
    assert matches("src/main.py", "src/*.py")
    assert not matches("src/pkg/main.py", "src/*.py")
    assert not matches("lib/src/main.py", "src/*.py")


@pytest.mark.unit
def test_double_star_spans_zero_or_more_directories() -> None:
    assert matches("src/main.py", "src/**/*.py")
    assert matches("src/a/b/c/main.py", "src/**/*.py")
    assert matches("x/y/z.md", "**/*.md")


@pytest.mark.unit
def test_star_never_crosses_a_directory_boundary() -> None:
    assert matches("src/main.py", "src/*")
    assert not matches("src/pkg/main.py", "src/*")
    assert not matches("docs/x.md/y.txt", "*.md")
    assert not matches("logs/file1/deep.txt", "file?")


@pytest.mark.unit
def test_inclusion_of_direct_children_does_not_pull_in_subtree() -> None:
    ps = make_set(inclusions=["src/*"])

    assert should_include("src/main.py", ps) is True
    assert should_include("src/pkg/main.py", ps) is False


@pytest.mark.unit
def test_trailing_slash_pattern_is_anchored() -> None:
    assert not matches("a/build/x.js", "build/")
    assert not matches("a/build/x.js", "build/", subtree=True)
    assert matches("build/x.js", "build/", subtree=True)


@pytest.mark.unit
def test_exclusion_naming_a_directory_covers_its_contents() -> None:
    assert should_include("a/node_modules/pkg/index.js", make_set(exclusions=["node_modules"])) is False
    assert should_include("src/generated/api/client.ts", make_set(exclusions=["src/generated"])) is False
    assert should_include("src/generated/api/client.ts", make_set(exclusions=["src/generated/"])) is False
    assert should_include("src/generated_api.ts", make_set(exclusions=["src/generated"])) is True
    assert should_include("lib/src/generated/x.ts", make_set(exclusions=["src/generated"])) is True


@pytest.mark.unit
def test_inclusion_naming_a_directory_does_not_cover_its_contents() -> None:
    assert should_include("src/generated/client.ts", make_set(inclusions=["src/generated"])) is False
    assert should_include("node_modules/pkg/index.js", make_set(inclusions=["node_modules"])) is False


@pytest.mark.unit
def test_question_mark_and_character_class() -> None:
    assert matches("logs/file1.txt", "file?.txt")
    assert not matches("logs/file10.txt", "file?.txt")
    assert matches("logs/file3.log", "file[0-9].log")
    assert not matches("logs/filex.log", "file[0-9].log")


@pytest.mark.unit
def test_basename_patterns_ignore_case_anchored_ones_do_not() -> None:
    assert matches("docs/README.MD", "readme.md")
    assert matches("docs/readme.md", "README.md")
    assert not matches("Src/app.py", "src/*.py")


@pytest.mark.unit
def test_backslash_patterns_and_paths_are_normalized() -> None:
    assert matches("src/app.py", "src\\*.py")
    assert matches("src\\app.py", "src/*.py")


@pytest.mark.unit
def test_blank_pattern_matches_nothing() -> None:
    assert not matches("src/app.py", "")
    assert not matches("src/app.py", "   ")


@pytest.mark.unit
def test_uncompilable_pattern_matches_nothing(mocker: MockerFixture) -> None:
    original = pathspec.PathSpec.from_lines

    def fake_from_lines(style: str, lines: list[str]) -> pathspec.PathSpec:
        if lines == ["broken"]:
            msg = "bad pattern"
            raise ValueError(msg)
        return original(style, lines)

    patterns._compile.cache_clear()
    mocker.patch.object(patterns.pathspec.PathSpec, "from_lines", side_effect=fake_from_lines)
    try:
        # A broken exclusion must not exclude everything...
        assert should_include("src/app.py", make_set(exclusions=["broken"])) is True
        # ...and a broken inclusion includes nothing by itself.
        assert should_include("src/app.py", make_set(inclusions=["broken"])) is False
        assert should_include("src/app.py", make_set(inclusions=["broken", "*.py"])) is True
    finally:
        patterns._compile.cache_clear()


@pytest.mark.unit
def test_compiling_patterns_emits_no_deprecation_warning() -> None:
    patterns._compile.cache_clear()
    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        assert matches("docs/a.md", "*.md")
        assert matches("src/a.py", "src/*.py")
