"""Standalone binaries: one build per target platform.

Each binary is archived (``.zip`` for Windows targets, ``.tar.gz``
otherwise) and checksummed; the archives become assets of the host
release, so deleting the release also withdraws them.
"""

from __future__ import annotations

import tarfile
from pathlib import Path
from zipfile import ZIP_DEFLATED, ZipFile

from monorel.core.result import Err, Ok, Result
from monorel.output.console import Style
from monorel.platform.files import sha256_file
from monorel.platform.process import run_shell
from monorel.services.release.errors import ReleaseError
from monorel.services.release.model import ArtifactKind, BinaryArtifact, VerificationCheck
from monorel.services.release.publishers.base import PublishContext, PublishOutcome, command_error
from monorel.services.release.timeouts import BUILD_TIMEOUT_SECONDS

BINARIES_DIR = "binaries"

DEFAULT_BINARY_COMMAND = "npx pkg {package_dir} --target {target} --output {output}"

PKG_TARGETS: dict[str, str] = {
    "linux-x64": "node18-linux-x64",
    "linux-arm64": "node18-linux-arm64",
    "macos-x64": "node18-macos-x64",
    "macos-arm64": "node18-macos-arm64",
    "win-x64": "node18-win-x64",
}


def is_windows(platform: str) -> bool:
    return platform.startswith("win")


def binary_file_name(name: str, platform: str, version: str) -> str:
    ext = ".exe" if is_windows(platform) else ""
    # Scoped package names are not valid file names.
    safe = name.rsplit("/", 1)[-1].lstrip("@")
    return f"{safe}-{platform}-{version}{ext}"


def archive_binary(binary: Path, platform: str) -> Path:
    """Archive one binary under its base name; returns the archive path."""
    if is_windows(platform):
        out = binary.with_name(binary.name + ".zip")
        with ZipFile(out, "w", compression=ZIP_DEFLATED, strict_timestamps=False) as zf:
            zf.write(binary, arcname=binary.name)
        return out

    out = binary.with_name(binary.name + ".tar.gz")
    with tarfile.open(out, "w:gz") as tar:
        tar.add(binary, arcname=binary.name)
    return out


class BinaryPublisher:
    kind: ArtifactKind = "binaries"

    def __init__(self) -> None:
        self._built: list[BinaryArtifact] = []

    def output_dir(self, ctx: PublishContext) -> Path:
        return ctx.root / BINARIES_DIR

    def build(self, ctx: PublishContext) -> Result[str, ReleaseError]:
        out_dir = self.output_dir(ctx)
        out_dir.mkdir(parents=True, exist_ok=True)
        self._built = []
        logs: list[str] = []

        name = ctx.config.package_name or ctx.config.name
        template = ctx.config.binary_command or DEFAULT_BINARY_COMMAND
        for platform in ctx.config.binary_platforms:
            target = PKG_TARGETS.get(platform)
            if target is None and ctx.config.binary_command is None:
                return Err(
                    ReleaseError(
                        kind="build_failed",
                        message=f"unknown binary platform: {platform}",
                        hint=f"Known platforms: {', '.join(sorted(PKG_TARGETS))}",
                    )
                )

            output = out_dir / binary_file_name(name, platform, ctx.version)
            command = template.format(
                package_dir=ctx.config.package_dir,
                platform=platform,
                target=target or platform,
                output=output,
                name=ctx.config.name,
                version=ctx.version,
            )
            ctx.console.print(f"building {platform} binary", Style.DIM)
            result = run_shell(command, cwd=ctx.root, timeout=BUILD_TIMEOUT_SECONDS)
            if isinstance(result, Err):
                return Err(
                    command_error(
                        result.error,
                        kind="build_failed",
                        message=f"failed to build {platform} binary",
                    )
                )
            if not output.is_file():
                return Err(
                    ReleaseError(
                        kind="build_failed",
                        message=f"binary was not created at {output}",
                    )
                )

            try:
                archive = archive_binary(output, platform)
                checksum = sha256_file(archive)
            except (OSError, tarfile.TarError) as e:
                return Err(
                    ReleaseError(kind="build_failed", message=f"cannot archive {output}: {e}")
                )

            self._built.append(
                BinaryArtifact(platform=platform, path=str(archive), checksum=checksum)
            )
            logs.append(f"{platform}: {archive.name} sha256={checksum}")

        return Ok("\n".join(logs))

    def publish(self, ctx: PublishContext) -> Result[PublishOutcome, ReleaseError]:
        """Hand the archives over for attachment to the host release."""
        if not self._built:
            built = self.build(ctx)
            if isinstance(built, Err):
                return built
        return Ok(
            PublishOutcome(
                binaries=tuple(self._built),
                assets=tuple(Path(b.path) for b in self._built),
            )
        )

    def verify(self, ctx: PublishContext) -> VerificationCheck:
        for b in self._built:
            path = Path(b.path)
            if not path.is_file() or sha256_file(path) != b.checksum:
                return VerificationCheck(
                    target="binaries",
                    passed=False,
                    message=f"{path.name} missing or checksum mismatch",
                )
        return VerificationCheck(target="binaries", passed=True)

    def unpublish(self, ctx: PublishContext) -> Result[str, ReleaseError]:
        return Ok("binary assets withdrawn with the host release")
