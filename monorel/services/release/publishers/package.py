from __future__ import annotations

from monorel.core.result import Err, Ok, Result
from monorel.output.console import Style
from monorel.platform.process import run as run_process
from monorel.services.release.errors import ReleaseError
from monorel.services.release.model import ArtifactKind, ArtifactRecord, VerificationCheck
from monorel.services.release.publishers.base import (
    PublishContext,
    PublishOutcome,
    manual_cleanup,
    run_step,
)
from monorel.services.release.timeouts import PUBLISH_TIMEOUT_SECONDS, VERIFY_TIMEOUT_SECONDS

REGISTRY_URL = "https://www.npmjs.com/package"


def package_url(name: str) -> str:
    return f"{REGISTRY_URL}/{name}"


class PackagePublisher:
    """npm registry package."""

    kind: ArtifactKind = "package"

    def build(self, ctx: PublishContext) -> Result[str, ReleaseError]:
        # The component build command already produced the package.
        return Ok("")

    def publish(self, ctx: PublishContext) -> Result[PublishOutcome, ReleaseError]:
        name = ctx.config.package_name or ctx.config.name
        url = package_url(name)

        if ctx.dry_run:
            ctx.console.print(f"(dry-run) npm publish {name}@{ctx.version}", Style.DIM)
            packed = run_step(
                ctx,
                ["npm", "pack", "--dry-run"],
                cwd=ctx.package_path,
                timeout=PUBLISH_TIMEOUT_SECONDS,
                kind="publish_failed",
                message=f"npm pack failed for {name}",
            )
            if isinstance(packed, Err):
                return packed
            return Ok(PublishOutcome(record=ArtifactRecord(name=name, published=False, url=url)))

        result = run_step(
            ctx,
            ["npm", "publish", "--access", "public"],
            cwd=ctx.package_path,
            timeout=PUBLISH_TIMEOUT_SECONDS,
            kind="publish_failed",
            message=f"npm publish failed for {name}@{ctx.version}",
        )
        if isinstance(result, Err):
            return result
        return Ok(PublishOutcome(record=ArtifactRecord(name=name, published=True, url=url)))

    def verify(self, ctx: PublishContext) -> VerificationCheck:
        name = ctx.config.package_name or ctx.config.name
        result = run_process(
            ["npm", "view", f"{name}@{ctx.version}", "version"],
            cwd=ctx.root,
            timeout=VERIFY_TIMEOUT_SECONDS,
        )
        if isinstance(result, Err):
            return VerificationCheck(
                target="package",
                passed=False,
                url=package_url(name),
                message=f"{name}@{ctx.version} not found in registry",
            )
        found = result.value.strip()
        if found != ctx.version:
            return VerificationCheck(
                target="package",
                passed=False,
                url=package_url(name),
                message=f"registry reports {found or 'nothing'}, expected {ctx.version}",
            )
        return VerificationCheck(target="package", passed=True, url=package_url(name))

    def unpublish(self, ctx: PublishContext) -> Result[str, ReleaseError]:
        name = ctx.config.package_name or ctx.config.name
        pkg_ref = f"{name}@{ctx.version}"
        result = run_process(
            ["npm", "unpublish", pkg_ref], cwd=ctx.root, timeout=PUBLISH_TIMEOUT_SECONDS
        )
        if isinstance(result, Err):
            return manual_cleanup(
                f"failed to unpublish {pkg_ref}",
                f"Run: npm unpublish {pkg_ref}"
                f" (or npm deprecate {pkg_ref} if the window has passed)",
            )
        return Ok(f"unpublished {pkg_ref}")
