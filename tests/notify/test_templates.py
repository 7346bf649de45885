from __future__ import annotations

import pytest

from workspaces.core.models.enums import MailKind
from workspaces.core.notify import templates
from workspaces.core.notify.templates import render


def test_expiring() -> None:
    mail = render(MailKind.EXPIRING, name="data", filesystem="tank", days=6, host="hpc1")
    assert mail.subject == "Your workspace data on hpc1 will expire in 6 days."
    assert mail.body.startswith(mail.subject)
    assert "workspaces extend -f tank -d <duration in days> data" in mail.body
    assert "workspaces expire -f tank data" in mail.body


def test_deleting_shares_the_expiring_body() -> None:
    mail = render(MailKind.DELETING, name="data", filesystem="tank", days=2, host="hpc1")
    assert mail.subject == "Your workspace data on hpc1 will be deleted in 2 days."
    assert mail.body.startswith(mail.subject)
    assert "workspaces extend" in mail.body


def test_created_mentions_mountpoint() -> None:
    mail = render(MailKind.CREATED, name="data", filesystem="tank", days=30, mountpoint="/tank/alice/data", host="h")
    assert "Mountpoint: /tank/alice/data" in mail.body
    assert "in 30 days" in mail.body

    without = render(MailKind.CREATED, name="data", filesystem="tank", days=30, host="h")
    assert "Mountpoint" not in without.body


def test_test_mail_defaults_to_local_hostname(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(templates, "hostname", lambda: "node42")
    mail = render(MailKind.TEST)
    assert mail.subject == "Workspaces test email from node42"
    assert "node42" in mail.body


@pytest.mark.parametrize("kind", list(MailKind))
def test_every_kind_renders(kind: MailKind) -> None:
    mail = render(kind, name="n", filesystem="f", days=1, host="h")
    assert mail.subject
    assert mail.body
