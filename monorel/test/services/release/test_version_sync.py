from __future__ import annotations

import json
from pathlib import Path

import pytest

from monorel.core.result import Err, Ok
from monorel.services.release.model import VersionSyncRule
from monorel.services.release.version_sync import VersionSyncEngine, read_manifest_version

PKG = "packages/mcp-screenshot"

RULES = (
    VersionSyncRule(
        path=f"{PKG}/package.json",
        pattern=r'"version":\s*"[^"]+"',
        replacement='"version": "$VERSION"',
    ),
    VersionSyncRule(
        path=f"{PKG}/src/version.ts",
        pattern=r"VERSION = '[^']+'",
        replacement="VERSION = '$VERSION'",
    ),
)


@pytest.fixture
def component(tmp_path: Path) -> Path:
    pkg = tmp_path / PKG
    (pkg / "src").mkdir(parents=True)
    (pkg / "package.json").write_text(
        json.dumps(
            {
                "name": "@acme/mcp-screenshot",
                "version": "1.2.3",
                "dependencies": {"left-pad": {"version": "0.0.1"}},
            },
            indent=2,
        )
        + "\n",
        encoding="utf-8",
    )
    (pkg / "src" / "version.ts").write_text("export const VERSION = '1.2.3';\n", encoding="utf-8")
    return tmp_path


class TestBump:
    def test_patch_bump_writes_manifest(self, component: Path) -> None:
        engine = VersionSyncEngine(root=component)
        manifest = component / PKG / "package.json"

        result = engine.bump_version(manifest, "patch")
        assert isinstance(result, Ok)
        assert (result.value.previous, result.value.version) == ("1.2.3", "1.2.4")

        data = json.loads(manifest.read_text(encoding="utf-8"))
        assert data["version"] == "1.2.4"
        assert data["dependencies"]["left-pad"]["version"] == "0.0.1"

    def test_dry_run_leaves_file(self, component: Path) -> None:
        engine = VersionSyncEngine(root=component)
        manifest = component / PKG / "package.json"
        before = manifest.read_text(encoding="utf-8")

        result = engine.bump_version(manifest, "minor", dry_run=True)
        assert isinstance(result, Ok)
        assert result.value.version == "1.3.0"
        assert manifest.read_text(encoding="utf-8") == before

    def test_explicit_version_is_validated(self, component: Path) -> None:
        engine = VersionSyncEngine(root=component)
        manifest = component / PKG / "package.json"

        ok = engine.bump_version(manifest, "patch", explicit="2.0.0-rc.1")
        assert isinstance(ok, Ok) and ok.value.version == "2.0.0-rc.1"

        bad = engine.bump_version(manifest, "patch", explicit="two")
        assert isinstance(bad, Err)
        assert bad.error.kind == "invalid_version"

    def test_non_semver_current_version(self, tmp_path: Path) -> None:
        manifest = tmp_path / "package.json"
        manifest.write_text('{"version": "latest"}', encoding="utf-8")
        result = VersionSyncEngine(root=tmp_path).bump_version(manifest, "patch")
        assert isinstance(result, Err)
        assert result.error.kind == "invalid_version"

    def test_toml_manifest(self, tmp_path: Path) -> None:
        manifest = tmp_path / "pyproject.toml"
        manifest.write_text('[project]\nname = "x"\nversion = "0.1.0"\n', encoding="utf-8")

        assert read_manifest_version(manifest) == Ok("0.1.0")
        result = VersionSyncEngine(root=tmp_path).bump_version(manifest, "major")
        assert isinstance(result, Ok)
        assert 'version = "1.0.0"' in manifest.read_text(encoding="utf-8")

    def test_missing_manifest(self, tmp_path: Path) -> None:
        result = read_manifest_version(tmp_path / "package.json")
        assert isinstance(result, Err)
        assert "manifest not found" in result.error.message


class TestSync:
    def test_sync_then_verify(self, component: Path) -> None:
        engine = VersionSyncEngine(root=component)

        report = engine.sync_versions(RULES, "1.2.4")
        assert report.ok
        assert report.files_updated == (f"{PKG}/package.json", f"{PKG}/src/version.ts")
        assert engine.verify_versions(RULES, "1.2.4")
        assert not engine.verify_versions(RULES, "1.2.3")

    def test_idempotent(self, component: Path) -> None:
        engine = VersionSyncEngine(root=component)
        engine.sync_versions(RULES, "1.2.4")
        snapshot = [(component / r.path).read_text(encoding="utf-8") for r in RULES]

        again = engine.sync_versions(RULES, "1.2.4")
        assert again.ok
        assert again.files_updated == ()
        assert [(component / r.path).read_text(encoding="utf-8") for r in RULES] == snapshot

    def test_dry_run_reports_but_does_not_write(self, component: Path) -> None:
        engine = VersionSyncEngine(root=component)
        report = engine.sync_versions(RULES, "1.2.4", dry_run=True)
        assert len(report.files_updated) == 2
        assert engine.verify_versions(RULES, "1.2.3")

    def test_errors_do_not_abort_other_rules(self, component: Path) -> None:
        rules = (
            VersionSyncRule(path="missing.json", pattern="x", replacement="$VERSION"),
            VersionSyncRule(path=f"{PKG}/src/version.ts", pattern="NOPE", replacement="$VERSION"),
            RULES[0],
        )
        report = VersionSyncEngine(root=component).sync_versions(rules, "1.2.4")

        assert report.errors == (
            "missing.json: file not found",
            f"{PKG}/src/version.ts: pattern not found: NOPE",
        )
        assert report.files_updated == (f"{PKG}/package.json",)

    def test_optional_file_may_be_missing(self, component: Path) -> None:
        rule = VersionSyncRule(
            path="README.md", pattern="v[0-9.]+", replacement="v$VERSION", optional=True
        )
        engine = VersionSyncEngine(root=component)
        report = engine.sync_versions((rule,), "1.2.4")
        assert report.ok and report.files_updated == ()
        assert engine.verify_versions((rule,), "1.2.4")

    def test_replacement_is_literal(self, tmp_path: Path) -> None:
        (tmp_path / "v.txt").write_text("version=0.0.1\n", encoding="utf-8")
        rule = VersionSyncRule(
            path="v.txt", pattern=r"version=\S+", replacement=r"version=\1$VERSION"
        )

        report = VersionSyncEngine(root=tmp_path).sync_versions((rule,), "1.0.0")
        assert report.ok
        assert (tmp_path / "v.txt").read_text(encoding="utf-8") == "version=\\11.0.0\n"
