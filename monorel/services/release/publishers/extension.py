from __future__ import annotations

import json
from pathlib import Path

from monorel.core.result import Err, Ok, Result
from monorel.core.structured import as_str_dict, get_list, get_str
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

MARKETPLACE_URL = "https://marketplace.visualstudio.com/items?itemName="


def _listed_versions(payload: str) -> list[str]:
    try:
        obj: object = json.loads(payload)
    except json.JSONDecodeError:
        return []
    data = as_str_dict(obj)
    if data is None:
        return []
    out: list[str] = []
    for item in get_list(data, "versions") or []:
        entry = as_str_dict(item)
        if entry is None:
            continue
        version = get_str(entry, "version")
        if version is not None:
            out.append(version)
    return out


class ExtensionPublisher:
    """Editor marketplace extension, packaged and published with vsce.

    vsce reads the marketplace token from ``VSCE_PAT`` itself, so the token
    never appears on a command line.
    """

    kind: ArtifactKind = "extension"

    def _dir(self, ctx: PublishContext) -> Path:
        rel = ctx.config.extension_dir or ctx.config.package_dir
        return ctx.root / rel

    def _vsix(self, ctx: PublishContext) -> Path:
        return self._dir(ctx) / f"{ctx.config.extension_name}-{ctx.version}.vsix"

    def _url(self, ctx: PublishContext) -> str:
        return f"{MARKETPLACE_URL}{ctx.config.extension_name}"

    def build(self, ctx: PublishContext) -> Result[str, ReleaseError]:
        return run_step(
            ctx,
            ["npx", "vsce", "package", "--out", str(self._vsix(ctx))],
            cwd=self._dir(ctx),
            timeout=BUILD_TIMEOUT_SECONDS,
            kind="build_failed",
            message=f"vsce package failed for {ctx.config.extension_name}",
        )

    def publish(self, ctx: PublishContext) -> Result[PublishOutcome, ReleaseError]:
        name = ctx.config.extension_name or ctx.config.name
        if ctx.dry_run:
            ctx.console.print(f"(dry-run) vsce publish {self._vsix(ctx).name}", Style.DIM)
            record = ArtifactRecord(name=name, published=False, url=self._url(ctx))
            return Ok(PublishOutcome(record=record))

        result = run_step(
            ctx,
            ["npx", "vsce", "publish", "--packagePath", str(self._vsix(ctx))],
            cwd=self._dir(ctx),
            timeout=PUBLISH_TIMEOUT_SECONDS,
            kind="publish_failed",
            message=f"vsce publish failed for {name}",
        )
        if isinstance(result, Err):
            return result
        record = ArtifactRecord(name=name, published=True, url=self._url(ctx))
        return Ok(PublishOutcome(record=record))

    def verify(self, ctx: PublishContext) -> VerificationCheck:
        name = ctx.config.extension_name or ctx.config.name
        result = run_process(
            ["npx", "vsce", "show", name, "--json"],
            cwd=ctx.root,
            timeout=VERIFY_TIMEOUT_SECONDS,
        )
        if isinstance(result, Err):
            return VerificationCheck(
                target="extension",
                passed=False,
                url=self._url(ctx),
                message=f"{name} not found on the marketplace",
            )
        if ctx.version not in _listed_versions(result.value):
            return VerificationCheck(
                target="extension",
                passed=False,
                url=self._url(ctx),
                message=f"{name} {ctx.version} not listed yet",
            )
        return VerificationCheck(target="extension", passed=True, url=self._url(ctx))

    def unpublish(self, ctx: PublishContext) -> Result[str, ReleaseError]:
        # vsce can only unpublish the whole extension.
        name = ctx.config.extension_name or ctx.config.name
        return manual_cleanup(
            f"marketplace version {name} {ctx.version} must be removed manually",
            f"Remove version {ctx.version} of {name} from the marketplace publisher portal",
        )
