from __future__ import annotations

from datetime import date as Date
from string import Template

DEFAULT_RELEASE_TEMPLATE = "## ${component} v${version}\n\n${changelog}\n"

EMPTY_CHANGELOG = "_No notable changes._"


def render_release_notes(
    template: str | None,
    *,
    component: str,
    version: str,
    tag: str,
    changelog: str,
    date: Date | None = None,
) -> str:
    """Fill ``${component}``, ``${version}``, ``${tag}``, ``${date}``, ``${changelog}``.

    Unknown placeholders are left as written.
    """
    text = Template(template or DEFAULT_RELEASE_TEMPLATE)
    return text.safe_substitute(
        component=component,
        version=version,
        tag=tag,
        date=(date or Date.today()).isoformat(),
        changelog=changelog.strip() or EMPTY_CHANGELOG,
    )
