"""Mail subjects and bodies, rendered with Jinja2.

Template variables:

- ``host``       : str        -- host the workspaces live on
- ``name``       : str        -- workspace name
- ``filesystem`` : str        -- filesystem name
- ``days``       : int        -- days until expiry / deletion / initial expiry
- ``mountpoint`` : str | None -- volume mountpoint, where known
"""

from __future__ import annotations

import socket
from dataclasses import dataclass

import jinja2

from workspaces.core.models.enums import MailKind

_EXTEND_HINT = (
    "You can extend it by logging into {{ host }} and running\n"
    "`workspaces extend -f {{ filesystem }} -d <duration in days> {{ name }}`."
)

_SUBJECTS: dict[MailKind, str] = {
    MailKind.CREATED: "Workspace {{ name }} created on {{ host }}",
    MailKind.EXTENDED: "Workspace {{ name }} extended on {{ host }}",
    MailKind.EXPIRING: "Your workspace {{ name }} on {{ host }} will expire in {{ days }} days.",
    MailKind.DELETING: "Your workspace {{ name }} on {{ host }} will be deleted in {{ days }} days.",
    MailKind.TEST: "Workspaces test email from {{ host }}",
}

_BODIES: dict[MailKind, str] = {
    MailKind.CREATED: (
        "Hello,\n\n"
        'Your workspace "{{ name }}" has been created on {{ host }}.\n'
        "Filesystem: {{ filesystem }}\n"
        "{% if mountpoint %}Mountpoint: {{ mountpoint }}\n{% endif %}"
        "Initial expiry: in {{ days }} days.\n\n" + _EXTEND_HINT + "\n"
    ),
    MailKind.EXTENDED: (
        "Hello,\n\n"
        'Your workspace "{{ name }}" on {{ host }} ({{ filesystem }}) has been extended.\n'
        "It now expires in {{ days }} days.\n"
    ),
    MailKind.EXPIRING: (
        "{{ subject }}\n\n" + _EXTEND_HINT + "\n\n"
        "To disable notifications for this workspace, manually mark this workspace as expired by running\n"
        "`workspaces expire -f {{ filesystem }} {{ name }}`."
    ),
    MailKind.TEST: (
        "Hello,\n\n"
        "This is a test email sent by Workspaces on {{ host }}.\n"
        "If you can read this, SMTP is configured correctly.\n"
    ),
}
_BODIES[MailKind.DELETING] = _BODIES[MailKind.EXPIRING]

_env = jinja2.Environment(autoescape=False, keep_trailing_newline=True, undefined=jinja2.StrictUndefined)  # noqa: S701


@dataclass(frozen=True)
class RenderedMail:
    subject: str
    body: str


def hostname() -> str:
    return socket.gethostname()


def render(
    kind: MailKind,
    *,
    name: str = "",
    filesystem: str = "",
    days: int = 0,
    mountpoint: str | None = None,
    host: str | None = None,
) -> RenderedMail:
    """Render subject and body for *kind*."""
    template_vars: dict[str, object] = {
        "host": host or hostname(),
        "name": name,
        "filesystem": filesystem,
        "days": days,
        "mountpoint": mountpoint,
    }
    subject = _env.from_string(_SUBJECTS[kind]).render(**template_vars)
    body = _env.from_string(_BODIES[kind]).render(subject=subject, **template_vars)
    return RenderedMail(subject=subject, body=body)
