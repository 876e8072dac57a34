"""Artifact publishers (package, container, extension, binaries)."""

from monorel.services.release.model import ArtifactKind
from monorel.services.release.publishers.base import PublishContext, PublishOutcome, Publisher
from monorel.services.release.publishers.binaries import BinaryPublisher
from monorel.services.release.publishers.container import ContainerPublisher
from monorel.services.release.publishers.extension import ExtensionPublisher
from monorel.services.release.publishers.package import PackagePublisher


def default_publishers() -> dict[ArtifactKind, Publisher]:
    return {
        "package": PackagePublisher(),
        "container": ContainerPublisher(),
        "extension": ExtensionPublisher(),
        "binaries": BinaryPublisher(),
    }


__all__ = [
    "BinaryPublisher",
    "ContainerPublisher",
    "ExtensionPublisher",
    "PackagePublisher",
    "PublishContext",
    "PublishOutcome",
    "Publisher",
    "default_publishers",
]
