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
from monorel.services.release.timeouts import (
    BUILD_TIMEOUT_SECONDS,
    PUBLISH_TIMEOUT_SECONDS,
    VERIFY_TIMEOUT_SECONDS,
)


class ContainerPublisher:
    """Container image, pushed as ``image:version`` and ``image:latest``."""

    kind: ArtifactKind = "container"

    def _image(self, ctx: PublishContext) -> str:
        return ctx.config.container_image or ctx.config.name

    def build(self, ctx: PublishContext) -> Result[str, ReleaseError]:
        if not (ctx.package_path / "Dockerfile").is_file():
            return Err(
                ReleaseError(
                    kind="build_failed",
                    message=f"no Dockerfile in {ctx.config.package_dir}",
                )
            )
        ref = f"{self._image(ctx)}:{ctx.version}"
        # Local only; safe in dry run.
        return run_step(
            ctx,
            ["docker", "build", "-t", ref, "."],
            cwd=ctx.package_path,
            timeout=BUILD_TIMEOUT_SECONDS,
            kind="build_failed",
            message=f"docker build failed for {ref}",
        )

    def publish(self, ctx: PublishContext) -> Result[PublishOutcome, ReleaseError]:
        image = self._image(ctx)
        versioned = f"{image}:{ctx.version}"
        latest = f"{image}:latest"
        url = f"docker://{versioned}"

        if ctx.dry_run:
            ctx.console.print(f"(dry-run) docker push {versioned} {latest}", Style.DIM)
            return Ok(PublishOutcome(record=ArtifactRecord(name=image, published=False, url=url)))

        tagged = run_step(
            ctx,
            ["docker", "tag", versioned, latest],
            cwd=ctx.package_path,
            timeout=PUBLISH_TIMEOUT_SECONDS,
            kind="publish_failed",
            message=f"docker tag failed for {image}",
        )
        if isinstance(tagged, Err):
            return tagged

        for ref in (versioned, latest):
            pushed = run_step(
                ctx,
                ["docker", "push", ref],
                cwd=ctx.package_path,
                timeout=PUBLISH_TIMEOUT_SECONDS,
                kind="publish_failed",
                message=f"docker push failed for {ref}",
            )
            if isinstance(pushed, Err):
                return pushed

        return Ok(PublishOutcome(record=ArtifactRecord(name=image, published=True, url=url)))

    def verify(self, ctx: PublishContext) -> VerificationCheck:
        ref = f"{self._image(ctx)}:{ctx.version}"
        result = run_process(
            ["docker", "manifest", "inspect", ref],
            cwd=ctx.root,
            timeout=VERIFY_TIMEOUT_SECONDS,
        )
        if isinstance(result, Err):
            return VerificationCheck(
                target="container",
                passed=False,
                url=f"docker://{ref}",
                message=f"{ref} not found in registry",
            )
        return VerificationCheck(target="container", passed=True, url=f"docker://{ref}")

    def unpublish(self, ctx: PublishContext) -> Result[str, ReleaseError]:
        ref = f"{self._image(ctx)}:{ctx.version}"
        return manual_cleanup(
            f"container image {ref} cannot be deleted from the CLI",
            f"Delete {ref} (and reset latest) in the registry for {self._image(ctx)}",
        )
