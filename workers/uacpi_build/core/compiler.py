"""
Compiler configurator — uACPI sources → libuacpi.a.

Each source in the fixed set is compiled in isolation with the shared
configuration's compiler arguments, then all objects are archived.  The
first failure aborts; the archive is removed so no partial library is
ever left where the link step would pick it up.
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile

from uacpi_build import LIBRARY_NAME
from uacpi_build.core.command import CommandRunner, check_command, run_command
from uacpi_build.errors import CompileError
from uacpi_build.policy.profile import SOURCES, BuildConfiguration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ObjectMeta:
    """Minimal ELF metadata of one compiled object."""
    source: str
    path: Path
    sha256: str
    is_elf: bool = False
    elf_type: str = ""
    machine: str = ""


@dataclass
class ArchiveResult:
    """Outcome of a successful archive build."""
    path: Path
    sha256: str
    size_bytes: int
    compiler: str
    command_template: str
    objects: List[ObjectMeta] = field(default_factory=list)


def archive_name(library: str = LIBRARY_NAME) -> str:
    return f"lib{library}.a"


def hash_file(path: Path) -> str:
    """SHA-256 of a file."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def inspect_object(source: str, path: Path) -> ObjectMeta:
    """
    Read the ELF header of a compiled object.

    Informational only: a non-ELF object (e.g. a PE/COFF toolchain) is
    logged and recorded, never treated as a build failure.
    """
    sha = hash_file(path)
    try:
        with open(path, "rb") as f:
            elf = ELFFile(f)
            return ObjectMeta(
                source=source,
                path=path,
                sha256=sha,
                is_elf=True,
                elf_type=str(elf.header["e_type"]),
                machine=str(elf.header["e_machine"]),
            )
    except ELFError as e:
        logger.warning("Object %s is not ELF: %s", path, e)
        return ObjectMeta(source=source, path=path, sha256=sha)


def compile_command(
    cc: str,
    configuration: BuildConfiguration,
    source: Path,
    obj: Path,
) -> List[str]:
    return [cc, *configuration.compiler_args(), "-c", str(source), "-o", str(obj)]


def compile_archive(
    configuration: BuildConfiguration,
    dependency_dir: Path,
    out_dir: Path,
    cc: str = "clang",
    ar: str = "ar",
    runner: CommandRunner = run_command,
    sources: Sequence[str] = SOURCES,
    library: str = LIBRARY_NAME,
) -> ArchiveResult:
    """Compile *sources* under *configuration* and archive them into ``lib<library>.a``."""
    out_dir.mkdir(parents=True, exist_ok=True)
    obj_dir = out_dir / "obj"
    obj_dir.mkdir(exist_ok=True)
    archive_path = out_dir / archive_name(library)
    archive_path.unlink(missing_ok=True)

    template = " ".join(compile_command(cc, configuration, Path("<source>"), Path("<object>")))
    logger.info("Compiling %d uACPI sources for %s", len(sources), configuration.target_arch)
    logger.debug("Compile template: %s", template)

    objects: List[Path] = []
    for rel in sources:
        src_path = dependency_dir / rel
        obj_path = obj_dir / (Path(rel).stem + ".o")
        check_command(
            runner,
            compile_command(cc, configuration, src_path, obj_path),
            cwd=dependency_dir,
            error=CompileError,
            message=f"Failed to compile {rel}.",
            hint="The compiler diagnostics above are from the uACPI sources; no archive was produced.",
            operation="compile_archive",
        )
        objects.append(obj_path)

    try:
        check_command(
            runner,
            [ar, "crs", str(archive_path), *(str(o) for o in objects)],
            cwd=out_dir,
            error=CompileError,
            message=f"Failed to archive {archive_name(library)}.",
            operation="compile_archive",
        )
    except CompileError:
        archive_path.unlink(missing_ok=True)
        raise

    if not archive_path.exists():
        raise CompileError(
            f"Archiver reported success but {archive_path.name} is missing.",
            context={"operation": "compile_archive", "path": str(archive_path)},
        )

    metas = [inspect_object(rel, obj) for rel, obj in zip(sources, objects)]
    result = ArchiveResult(
        path=archive_path,
        sha256=hash_file(archive_path),
        size_bytes=archive_path.stat().st_size,
        compiler=cc,
        command_template=template,
        objects=metas,
    )
    logger.info("Wrote %s (%d bytes)", archive_path, result.size_bytes)
    return result


def link_hints(result: ArchiveResult, library: Optional[str] = None) -> List[str]:
    """Linker arguments the consuming build needs to pick up the archive."""
    name = library or result.path.stem[len("lib"):]
    return [f"-L{result.path.parent}", f"-l{name}"]
