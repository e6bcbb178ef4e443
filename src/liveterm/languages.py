"""Language registry.

The registry maps a language id (``"python"``, ``"java"``, ...) to an
immutable :class:`LanguageDescriptor` describing how to compile and run a
snippet.  Descriptors are built once at start-up by :meth:`LanguageRegistry.probe`,
which looks for the required toolchains on ``PATH`` and in well known
installation directories.  A compiled language whose compiler cannot be
found is still registered, with ``compileable=False`` and a human readable
``unavailable_reason``, so that callers can tell the user exactly what is
missing instead of failing with a generic spawn error.

Command templates may reference the following placeholders, substituted by
:meth:`LanguageDescriptor.compile_argv` and :meth:`LanguageDescriptor.run_argv`:

``{source}``
    Path of the written source file.
``{artifact}``
    Path of the compiled output (compiled languages only).
``{workdir}``
    Directory that holds the source file.
``{entry}``
    Stem of the source file; for Java this is the class name.

Languages marked ``isolated`` get a private directory per execution.  Their
toolchains write extra files next to the source (Java class files, .NET
``bin``/``obj`` trees) and the whole directory is removed afterwards.
"""

from __future__ import annotations

import glob
import os
import re
import shutil
import subprocess
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .config import Config
from .errors import UnsupportedLanguage
from .logging import get_logger

logger = get_logger()

Which = Callable[..., Optional[str]]

# Directories scanned for a JDK when ``javac`` is not on PATH.
JDK_SEARCH_PATTERNS: Tuple[str, ...] = (
    "/usr/lib/jvm/*/bin",
    "/usr/java/*/bin",
    "/opt/java/*/bin",
    "/usr/local/opt/openjdk*/bin",
    "/Library/Java/JavaVirtualMachines/*/Contents/Home/bin",
    r"C:\Program Files\Java\jdk*\bin",
    r"C:\Program Files\Eclipse Adoptium\jdk*\bin",
    r"C:\Program Files\Common Files\Oracle\Java\javapath",
)


@dataclass(frozen=True)
class LanguageDescriptor:
    """How to turn a snippet of one language into a running process."""

    language: str
    extension: str
    run_cmd: Tuple[str, ...]
    compile_cmd: Optional[Tuple[str, ...]] = None
    env: Optional[Mapping[str, str]] = None
    compileable: bool = True
    # Returns the type name the source file must be called after, if any.
    entry_resolver: Optional[Callable[[str], Optional[str]]] = None
    isolated: bool = False
    # Fixed file name for the source, e.g. a project's Program.cs.
    source_name: Optional[str] = None
    # Extra files (name -> content) written next to the source.
    scaffold: Optional[Mapping[str, str]] = None
    # Suffix of the compiled output; ``None`` means the binary has no suffix.
    artifact_suffix: Optional[str] = None
    unavailable_reason: Optional[str] = None

    @property
    def compiled(self) -> bool:
        return self.compile_cmd is not None

    def _render(self, template: Iterable[str], source: Path, artifact: Optional[Path]) -> List[str]:
        values = {
            "source": str(source),
            "artifact": str(artifact) if artifact is not None else "",
            "workdir": str(source.parent),
            "entry": source.stem,
        }
        return [part.format(**values) for part in template]

    def compile_argv(self, source: Path, artifact: Optional[Path]) -> List[str]:
        if self.compile_cmd is None:
            raise ValueError(f"{self.language} is not a compiled language")
        return self._render(self.compile_cmd, source, artifact)

    def run_argv(self, source: Path, artifact: Optional[Path] = None) -> List[str]:
        return self._render(self.run_cmd, source, artifact)


def _binary_suffix() -> str:
    return ".exe" if os.name == "nt" else ""


_JAVA_NOISE = re.compile(
    r'//[^\n]*|/\*.*?\*/|"""(?:\\.|(?!""").)*"""|"(?:\\.|[^"\\\n])*"|\'(?:\\.|[^\'\\\n])*\'',
    re.S,
)
_JAVA_TYPE = re.compile(
    r"\b((?:(?:public|protected|private|abstract|final|static|sealed|strictfp)\s+)*)"
    r"(?:class|interface|enum|record)\s+(\w+)"
)
_JAVA_MAIN = re.compile(r"\bstatic\s+(?:final\s+)?void\s+main\s*\(")


def _block_end(text: str, start: int) -> int:
    """Index of the brace closing the first block opened at or after ``start``."""
    opened = text.find("{", start)
    if opened < 0:
        return len(text)
    depth = 0
    for index in range(opened, len(text)):
        if text[index] == "{":
            depth += 1
        elif text[index] == "}":
            depth -= 1
            if depth == 0:
                return index
    return len(text)


def java_entry_name(code: str) -> Optional[str]:
    """Name of the type a Java source file has to be called after.

    Comments and string literals are ignored.  A public top-level type wins
    because javac requires the file to carry its name; otherwise the
    top-level type declaring ``static void main``, then the first type.
    """
    text = _JAVA_NOISE.sub(" ", code)
    top_level: List[Tuple[str, bool, int, int]] = []
    for match in _JAVA_TYPE.finditer(text):
        if any(start <= match.start() <= end for _, _, start, end in top_level):
            continue
        is_public = "public" in match.group(1).split()
        top_level.append((match.group(2), is_public, match.start(), _block_end(text, match.end())))
    if not top_level:
        return None

    for name, is_public, _, _ in top_level:
        if is_public:
            return name
    for main in _JAVA_MAIN.finditer(text):
        for name, _, start, end in top_level:
            if start <= main.start() <= end:
                return name
    return top_level[0][0]


CSHARP_PROJECT = """<Project Sdk="Microsoft.NET.Sdk">
  <PropertyGroup>
    <OutputType>Exe</OutputType>
    <TargetFramework>{framework}</TargetFramework>
    <ImplicitUsings>enable</ImplicitUsings>
    <Nullable>enable</Nullable>
  </PropertyGroup>
</Project>
"""


SEED_LANGUAGES: Tuple[LanguageDescriptor, ...] = (
    LanguageDescriptor(
        language="python",
        extension="py",
        run_cmd=("python3", "-u", "{source}"),
        env={"PYTHONUNBUFFERED": "1", "PYTHONIOENCODING": "utf-8"},
    ),
    LanguageDescriptor(language="javascript", extension="js", run_cmd=("node", "{source}")),
    LanguageDescriptor(language="typescript", extension="ts", run_cmd=("npx", "ts-node", "{source}")),
    LanguageDescriptor(language="ruby", extension="rb", run_cmd=("ruby", "{source}")),
    LanguageDescriptor(language="bash", extension="sh", run_cmd=("bash", "{source}")),
    # go run compiles and executes in one step, so it is driven like an interpreter.
    LanguageDescriptor(language="go", extension="go", run_cmd=("go", "run", "{source}")),
    LanguageDescriptor(
        language="java",
        extension="java",
        compile_cmd=("javac", "-J-Xms32m", "-J-Xmx128m", "{source}"),
        run_cmd=("java", "-Xms16m", "-Xmx64m", "-XX:+UseSerialGC", "-cp", "{workdir}", "{entry}"),
        entry_resolver=java_entry_name,
        isolated=True,
        artifact_suffix=".class",
    ),
    LanguageDescriptor(
        language="csharp",
        extension="cs",
        compile_cmd=("dotnet", "build", "{workdir}", "--nologo", "-v", "quiet", "-o", "{workdir}"),
        run_cmd=("dotnet", "{artifact}"),
        env={
            "DOTNET_CLI_TELEMETRY_OPTOUT": "1",
            "DOTNET_NOLOGO": "1",
            "DOTNET_SKIP_FIRST_TIME_EXPERIENCE": "1",
        },
        isolated=True,
        source_name="Program.cs",
        scaffold={"Program.csproj": CSHARP_PROJECT.format(framework="net8.0")},
        artifact_suffix=".dll",
    ),
    LanguageDescriptor(
        language="cpp",
        extension="cpp",
        compile_cmd=("g++", "-O2", "-o", "{artifact}", "{source}"),
        run_cmd=("{artifact}",),
        artifact_suffix=_binary_suffix(),
    ),
    LanguageDescriptor(
        language="c",
        extension="c",
        compile_cmd=("gcc", "-O2", "-o", "{artifact}", "{source}"),
        run_cmd=("{artifact}",),
        artifact_suffix=_binary_suffix(),
    ),
    LanguageDescriptor(
        language="rust",
        extension="rs",
        compile_cmd=("rustc", "-o", "{artifact}", "{source}"),
        run_cmd=("{artifact}",),
        artifact_suffix=_binary_suffix(),
    ),
)


def _jdk_dirs(extra: Iterable[str]) -> List[str]:
    dirs: List[str] = []
    java_home = os.getenv("JAVA_HOME")
    if java_home:
        dirs.append(os.path.join(java_home, "bin"))
    dirs.extend(extra)
    for pattern in JDK_SEARCH_PATTERNS:
        dirs.extend(sorted(glob.glob(pattern), reverse=True))
    return dirs


def _probe_java(descriptor: LanguageDescriptor, jdk_paths: Iterable[str], which: Which) -> LanguageDescriptor:
    javac = which("javac")
    bin_dir: Optional[str] = None
    if javac is None:
        for candidate in _jdk_dirs(jdk_paths):
            javac = which("javac", path=candidate)
            if javac:
                bin_dir = candidate
                break
    if javac is None:
        java = which("java")
        runtime = f"Java runtime found at {java}" if java else "no Java runtime found"
        return replace(
            descriptor,
            compileable=False,
            unavailable_reason=(
                "Java compilation not available: no JDK (javac) was found. "
                f"Install a JDK, e.g. from https://adoptium.net/ ({runtime})."
            ),
        )

    env: Dict[str, str] = {}
    java = which("java", path=bin_dir) if bin_dir else which("java")
    if bin_dir:
        env["PATH"] = bin_dir + os.pathsep + os.environ.get("PATH", "")
        if not os.getenv("JAVA_HOME"):
            env["JAVA_HOME"] = str(Path(bin_dir).parent)
    return replace(
        descriptor,
        compile_cmd=(javac,) + descriptor.compile_cmd[1:],
        run_cmd=((java or "java"),) + descriptor.run_cmd[1:],
        env=env or None,
    )


def _probe_compiler(descriptor: LanguageDescriptor, which: Which) -> LanguageDescriptor:
    compiler = descriptor.compile_cmd[0]
    path = which(compiler)
    if path is None:
        return replace(
            descriptor,
            compileable=False,
            unavailable_reason=f"{descriptor.language} compilation not available: '{compiler}' was not found on PATH.",
        )
    return replace(descriptor, compile_cmd=(path,) + descriptor.compile_cmd[1:])


def _dotnet_sdk_version(dotnet: str) -> Optional[str]:
    """Return the version of the default .NET SDK, or ``None`` if there is none."""
    try:
        completed = subprocess.run(
            [dotnet, "--version"],
            capture_output=True,
            text=True,
            timeout=15,
            env=dict(os.environ, DOTNET_CLI_TELEMETRY_OPTOUT="1", DOTNET_NOLOGO="1"),
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.warning("Could not query %s --version: %s", dotnet, exc)
        return None
    if completed.returncode != 0:
        return None
    return completed.stdout.strip() or None


def _probe_dotnet(descriptor: LanguageDescriptor, which: Which) -> LanguageDescriptor:
    dotnet = which("dotnet")
    if dotnet is None:
        return replace(
            descriptor,
            compileable=False,
            unavailable_reason=(
                "C# compilation not available: the .NET SDK ('dotnet') was not found on PATH. "
                "Install it from https://dotnet.microsoft.com/download."
            ),
        )
    version = _dotnet_sdk_version(dotnet)
    match = re.match(r"(\d+)\.(\d+)", version or "")
    if match is None:
        return replace(
            descriptor,
            compileable=False,
            unavailable_reason=f"C# compilation not available: {dotnet} has no usable .NET SDK installed.",
        )
    framework = f"net{match.group(1)}.{match.group(2)}"
    return replace(
        descriptor,
        compile_cmd=(dotnet,) + descriptor.compile_cmd[1:],
        run_cmd=(dotnet,) + descriptor.run_cmd[1:],
        scaffold={"Program.csproj": CSHARP_PROJECT.format(framework=framework)},
    )


def _probe_python(descriptor: LanguageDescriptor, which: Which) -> LanguageDescriptor:
    interpreter = which("python3") or which("python") or sys.executable
    return replace(descriptor, run_cmd=(interpreter,) + descriptor.run_cmd[1:])


class LanguageRegistry:
    """Read-only lookup table of language descriptors."""

    def __init__(
        self,
        descriptors: Iterable[LanguageDescriptor],
        allowed: Optional[Iterable[str]] = None,
    ) -> None:
        table = {d.language: d for d in descriptors}
        allowed_set = {lang.lower() for lang in allowed} if allowed else None
        if allowed_set is not None:
            table = {lang: d for lang, d in table.items() if lang in allowed_set}
        self._table: Mapping[str, LanguageDescriptor] = MappingProxyType(table)

    def describe(self, language: str) -> LanguageDescriptor:
        try:
            return self._table[language.lower()]
        except KeyError:
            raise UnsupportedLanguage(language) from None

    def languages(self) -> List[str]:
        return sorted(self._table)

    def __contains__(self, language: object) -> bool:
        return isinstance(language, str) and language.lower() in self._table

    @classmethod
    def probe(
        cls,
        config: Optional[Config] = None,
        seeds: Iterable[LanguageDescriptor] = SEED_LANGUAGES,
        which: Which = shutil.which,
    ) -> "LanguageRegistry":
        """Build the registry by checking which toolchains exist on this host."""
        config = config or Config()
        probed: List[LanguageDescriptor] = []
        for descriptor in seeds:
            if descriptor.language == "python":
                descriptor = _probe_python(descriptor, which)
            elif descriptor.language == "java":
                descriptor = _probe_java(descriptor, config.jdk_paths, which)
            elif descriptor.language == "csharp":
                descriptor = _probe_dotnet(descriptor, which)
            elif descriptor.compiled:
                descriptor = _probe_compiler(descriptor, which)
            if not descriptor.compileable:
                logger.warning("Toolchain missing for %s: %s", descriptor.language, descriptor.unavailable_reason)
            probed.append(descriptor)
        registry = cls(probed, allowed=config.allowed_langs or None)
        logger.info("Language registry ready: %s", ", ".join(registry.languages()))
        return registry
