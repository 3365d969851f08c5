"""
Build runner — top-level orchestration: environment → archive + bindings + receipt.

Stages run strictly in order and every one blocks on its external tool:
  1. sync the uACPI submodule
  2. build the shared configuration (arch + feature contributions)
  3. compile libuacpi.a
  4. generate bindings.py
  5. write the receipt (warning on dependency / configuration drift)

Any failure removes the archive and the bindings so the output directory
never holds a half-updated pair.
"""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from uacpi_build.config import BuildEnvironment, load_environment
from uacpi_build.core.bindings import BINDINGS_FILE, BindingOptions, BindingsResult, generate_bindings
from uacpi_build.core.command import CommandRunner, run_command
from uacpi_build.core.compiler import ArchiveResult, archive_name, compile_archive, link_hints
from uacpi_build.core.submodule import SubmoduleSync, sync_submodule
from uacpi_build.errors import UacpiBuildError
from uacpi_build.io.schema import (
    ArchiveInfo,
    BindingsInfo,
    BuildReceipt,
    ConfigurationInfo,
    DependencyInfo,
    ObjectInfo,
    capture_toolchain,
    now_iso,
)
from uacpi_build.io.writer import drift_messages, read_previous_receipt, write_receipt
from uacpi_build.policy.features import parse_features
from uacpi_build.policy.profile import BuildConfiguration

logger = logging.getLogger(__name__)


@dataclass
class BuildOutcome:
    """Everything one successful build produced."""
    sync: SubmoduleSync
    configuration: BuildConfiguration
    archive: ArchiveResult
    bindings: BindingsResult
    receipt: BuildReceipt
    receipt_path: Path


# ── Receipt assembly ─────────────────────────────────────────────────────────

def _configuration_info(env: BuildEnvironment, cfg: BuildConfiguration) -> ConfigurationInfo:
    return ConfigurationInfo(
        target_arch=cfg.target_arch,
        features=sorted(f.value for f in env.features),
        include_dirs=list(cfg.include_dirs),
        defines=[f"{name}={value}" for name, value in cfg.defines],
        fixed_flags=list(cfg.fixed_flags),
        arch_flags=list(cfg.arch_flags),
        fingerprint=cfg.fingerprint(),
    )


def _archive_info(archive: ArchiveResult) -> ArchiveInfo:
    return ArchiveInfo(
        path=str(archive.path),
        sha256=archive.sha256,
        size_bytes=archive.size_bytes,
        command_template=archive.command_template,
        link_args=link_hints(archive),
        objects=[
            ObjectInfo(
                source=o.source,
                sha256=o.sha256,
                is_elf=o.is_elf,
                elf_type=o.elf_type,
                machine=o.machine,
            )
            for o in archive.objects
        ],
    )


def _bindings_info(bindings: BindingsResult) -> BindingsInfo:
    return BindingsInfo(
        path=str(bindings.path),
        sha256=bindings.sha256,
        size_bytes=bindings.size_bytes,
        verdict=bindings.verdict,
        reasons=list(bindings.reasons),
        parser=bindings.parser_version,
        counts=dict(bindings.counts),
        headers=list(bindings.headers),
    )


def remove_outputs(out_dir: Path) -> None:
    """Delete the archive and the bindings, whichever exist."""
    for name in (archive_name(), BINDINGS_FILE):
        path = out_dir / name
        if path.exists():
            logger.debug("Removing %s", path)
            path.unlink()


# ── Public API ───────────────────────────────────────────────────────────────

def run_build(
    env: BuildEnvironment,
    runner: CommandRunner = run_command,
    options: Optional[BindingOptions] = None,
) -> BuildOutcome:
    """
    Run every stage for *env*.

    Raises
    ------
    UacpiBuildError
        From whichever stage failed first; outputs are removed before
        the error propagates.
    """
    started_at = now_iso()
    out_dir = env.OUT_DIR
    out_dir.mkdir(parents=True, exist_ok=True)
    previous = read_previous_receipt(out_dir)
    (out_dir / BINDINGS_FILE).unlink(missing_ok=True)

    try:
        # ── Step 1: dependency ───────────────────────────────────────
        sync = sync_submodule(env.PROJECT_DIR, env.dependency_path, runner=runner, git=env.GIT)

        # ── Step 2: shared configuration ─────────────────────────────
        configuration = BuildConfiguration.for_target(
            env.TARGET_ARCH, env.features, env.include_path,
        )
        logger.info(
            "Target %s, defines %s, arch flags %s",
            configuration.target_arch,
            ", ".join(configuration.define_names()),
            " ".join(configuration.arch_flags) or "(none)",
        )

        # ── Step 3: archive ──────────────────────────────────────────
        archive = compile_archive(
            configuration,
            env.dependency_path,
            out_dir,
            cc=env.CC,
            ar=env.AR,
            runner=runner,
        )

        # ── Step 4: bindings ─────────────────────────────────────────
        bindings = generate_bindings(
            configuration,
            env.umbrella_path,
            out_dir,
            cc=env.CC,
            runner=runner,
            options=options,
        )
    except Exception:
        remove_outputs(out_dir)
        raise

    # ── Step 5: receipt ──────────────────────────────────────────────
    receipt = BuildReceipt(
        toolchain=capture_toolchain(env.CC, env.AR, env.GIT, runner=runner),
        dependency=DependencyInfo(
            path=str(sync.path),
            state_before=sync.state_before.value,
            state_after=sync.state_after.value,
            action=sync.action.value,
            command=" ".join(sync.argv),
            commit=sync.commit,
            duration_ms=sync.duration_ms,
        ),
        configuration=_configuration_info(env, configuration),
        archive=_archive_info(archive),
        bindings=_bindings_info(bindings),
        started_at=started_at,
        finished_at=now_iso(),
    )
    for message in drift_messages(previous, receipt):
        logger.warning("Interface drift: %s; review bindings.py before relying on it", message)
    receipt_path = write_receipt(receipt, out_dir)

    return BuildOutcome(
        sync=sync,
        configuration=configuration,
        archive=archive,
        bindings=bindings,
        receipt=receipt,
        receipt_path=receipt_path,
    )


# ── CLI ──────────────────────────────────────────────────────────────────────

def _report_failure(error: UacpiBuildError) -> None:
    """Pass the failing tool's own output through, then the error itself."""
    if error.result is not None:
        if error.result.stdout:
            sys.stdout.write(error.result.stdout)
        if error.result.stderr:
            sys.stderr.write(error.result.stderr)
    logger.error("[%s] %s", error.code, error)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for uacpi_build."""
    parser = argparse.ArgumentParser(
        description="uacpi_build — compile uACPI for kernel use and generate ctypes bindings",
    )
    parser.add_argument(
        "--project-dir",
        type=Path,
        default=None,
        help="Project root holding the uACPI submodule (default: $PROJECT_DIR)",
    )
    parser.add_argument(
        "--target-arch",
        default=None,
        help="Target architecture, e.g. x86_64 (default: $TARGET_ARCH)",
    )
    parser.add_argument(
        "--out-dir",
        type=Path,
        default=None,
        help="Directory for libuacpi.a, bindings.py and the receipt (default: $OUT_DIR)",
    )
    parser.add_argument(
        "--feature",
        action="append",
        default=[],
        metavar="NAME",
        help="Enable a feature (reduced-hardware, barebones-mode); repeatable",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        features = parse_features(args.feature)
        overrides = {
            "PROJECT_DIR": args.project_dir,
            "TARGET_ARCH": args.target_arch,
            "OUT_DIR": args.out_dir,
        }
        for feature in features:
            overrides["UACPI_FEATURE_" + feature.name] = True
        env = load_environment(**overrides)
        outcome = run_build(env)
    except UacpiBuildError as e:
        _report_failure(e)
        return 1

    # Print summary
    counts = outcome.bindings.counts
    print(f"uACPI: {outcome.sync.action.value} at {outcome.sync.commit or 'unknown commit'}")
    print(f"Archive: {outcome.archive.path} ({len(outcome.archive.objects)} objects)")
    print(f"Bindings: {outcome.bindings.path} "
          f"(records={counts.get('records', 0)}, "
          f"functions={counts.get('functions', 0)}, "
          f"constants={counts.get('constants', 0)})")
    print(f"Link with: {' '.join(link_hints(outcome.archive))}")
    print(f"Receipt: {outcome.receipt_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
