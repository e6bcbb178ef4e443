"""Tests for toolchain probing and descriptor rendering."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from liveterm.config import Config
from liveterm.errors import UnsupportedLanguage
from liveterm.languages import SEED_LANGUAGES, LanguageRegistry, java_entry_name


def fake_which(available):
    """Build a ``shutil.which`` stand-in that knows ``available`` binaries."""

    def which(name, path=None):
        if path is not None:
            return available.get((name, path))
        return available.get(name)

    return which


def test_every_seed_language_is_registered_even_without_toolchains():
    registry = LanguageRegistry.probe(Config(), which=fake_which({}))
    assert set(registry.languages()) == {d.language for d in SEED_LANGUAGES}


def test_missing_compilers_are_marked_not_compileable(monkeypatch):
    monkeypatch.delenv("JAVA_HOME", raising=False)
    monkeypatch.setattr("liveterm.languages.JDK_SEARCH_PATTERNS", ())
    registry = LanguageRegistry.probe(Config(), which=fake_which({"java": "/usr/bin/java"}))

    java = registry.describe("java")
    assert java.compiled
    assert not java.compileable
    assert "JDK" in java.unavailable_reason
    assert "/usr/bin/java" in java.unavailable_reason

    cpp = registry.describe("cpp")
    assert not cpp.compileable
    assert "g++" in cpp.unavailable_reason

    # Interpreted languages are never marked uncompileable.
    assert registry.describe("ruby").compileable


def test_found_compiler_is_resolved_to_absolute_path():
    registry = LanguageRegistry.probe(Config(), which=fake_which({"g++": "/opt/gcc/bin/g++"}))
    cpp = registry.describe("cpp")
    assert cpp.compileable
    assert cpp.compile_cmd[0] == "/opt/gcc/bin/g++"


def test_jdk_found_in_extra_directory(monkeypatch, tmp_path):
    monkeypatch.delenv("JAVA_HOME", raising=False)
    monkeypatch.setattr("liveterm.languages.JDK_SEARCH_PATTERNS", ())
    jdk_bin = str(tmp_path / "jdk-21" / "bin")
    which = fake_which(
        {
            ("javac", jdk_bin): jdk_bin + "/javac",
            ("java", jdk_bin): jdk_bin + "/java",
        }
    )
    registry = LanguageRegistry.probe(Config(jdk_paths=[jdk_bin]), which=which)

    java = registry.describe("java")
    assert java.compileable
    assert java.compile_cmd[0] == jdk_bin + "/javac"
    assert java.run_cmd[0] == jdk_bin + "/java"
    assert java.env["JAVA_HOME"] == str(tmp_path / "jdk-21")
    assert java.env["PATH"].startswith(jdk_bin)


def test_python_falls_back_to_python_then_current_interpreter():
    registry = LanguageRegistry.probe(Config(), which=fake_which({"python": "/usr/bin/python"}))
    assert registry.describe("python").run_cmd[0] == "/usr/bin/python"

    registry = LanguageRegistry.probe(Config(), which=fake_which({}))
    assert registry.describe("python").run_cmd[0] == sys.executable


def test_describe_unknown_language_raises():
    registry = LanguageRegistry(SEED_LANGUAGES)
    with pytest.raises(UnsupportedLanguage) as excinfo:
        registry.describe("cobol")
    assert isinstance(excinfo.value, LookupError)
    assert excinfo.value.kind == "UnsupportedLanguage"


def test_describe_is_case_insensitive():
    registry = LanguageRegistry(SEED_LANGUAGES)
    assert registry.describe("Python").language == "python"
    assert "JAVA" in registry


def test_allowed_languages_filter():
    registry = LanguageRegistry(SEED_LANGUAGES, allowed=["python", "bash"])
    assert registry.languages() == ["bash", "python"]
    with pytest.raises(UnsupportedLanguage):
        registry.describe("java")


def test_argv_rendering():
    registry = LanguageRegistry(SEED_LANGUAGES)
    source = Path("/tmp/work/Main.java")
    java = registry.describe("java")
    assert java.compile_argv(source, Path("/tmp/work/Main.class"))[-1] == "/tmp/work/Main.java"
    assert java.run_argv(source)[-3:] == ["-cp", "/tmp/work", "Main"]

    cpp = registry.describe("cpp")
    argv = cpp.compile_argv(Path("/tmp/run_1.cpp"), Path("/tmp/run_1"))
    assert argv[-3:] == ["-o", "/tmp/run_1", "/tmp/run_1.cpp"]
    assert cpp.run_argv(Path("/tmp/run_1.cpp"), Path("/tmp/run_1")) == ["/tmp/run_1"]

    python = registry.describe("python")
    with pytest.raises(ValueError):
        python.compile_argv(Path("/tmp/x.py"), None)


def test_csharp_without_dotnet_is_not_compileable():
    registry = LanguageRegistry.probe(Config(), which=fake_which({}))
    csharp = registry.describe("csharp")
    assert csharp.compiled
    assert not csharp.compileable
    assert "dotnet" in csharp.unavailable_reason


def test_csharp_project_targets_installed_sdk(monkeypatch):
    monkeypatch.setattr("liveterm.languages._dotnet_sdk_version", lambda dotnet: "9.0.100")
    registry = LanguageRegistry.probe(Config(), which=fake_which({"dotnet": "/usr/share/dotnet/dotnet"}))

    csharp = registry.describe("csharp")
    assert csharp.compileable
    assert csharp.compile_cmd[0] == "/usr/share/dotnet/dotnet"
    assert csharp.run_cmd[0] == "/usr/share/dotnet/dotnet"
    assert "<TargetFramework>net9.0</TargetFramework>" in csharp.scaffold["Program.csproj"]
    assert csharp.env["DOTNET_CLI_TELEMETRY_OPTOUT"] == "1"

    source = Path("/tmp/run_1/Program.cs")
    assert csharp.run_argv(source, Path("/tmp/run_1/Program.dll")) == [
        "/usr/share/dotnet/dotnet",
        "/tmp/run_1/Program.dll",
    ]


def test_csharp_dotnet_without_sdk(monkeypatch):
    monkeypatch.setattr("liveterm.languages._dotnet_sdk_version", lambda dotnet: None)
    registry = LanguageRegistry.probe(Config(), which=fake_which({"dotnet": "/usr/bin/dotnet"}))
    csharp = registry.describe("csharp")
    assert not csharp.compileable
    assert "SDK" in csharp.unavailable_reason


@pytest.mark.parametrize(
    "code, expected",
    [
        ("public class Hello { public static void main(String[] a) {} }", "Hello"),
        ("// Demo class showing input\nclass Main { static void main(String[] a) {} }", "Main"),
        ('class App { String s = "class Fake"; public static void main(String[] a) {} }', "App"),
        (
            "class Helper { int x; }\nclass Runner {\n  static class Inner {}\n"
            "  public static void main(String[] a) {}\n}\n",
            "Runner",
        ),
        ("interface Main {\n  static void main(String[] args) {}\n}\n", "Main"),
        ("enum Color { RED }", "Color"),
        ("int x = 1;", None),
    ],
)
def test_java_entry_name(code, expected):
    assert java_entry_name(code) == expected
