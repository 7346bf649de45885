"""Mail delivery to workspace owners.

Three layers:

- ``Mailer``: the transport protocol (``send``), with ``SmtpMailer`` as the
  production implementation.
- ``resolve_recipient``: finds an owner's address in
  ``~/.config/workspaces.toml``::

      email = "Jane Doe <jane@example.org>"

- ``Notifier``: renders a mail kind and sends it to an owner.

Failures are split the way the maintenance sweep needs them: anything about
the recipient is a ``NotificationUserError`` (skip this owner), anything
about the transport is a ``NotificationTransportError`` (stop the run).
"""

from __future__ import annotations

import pwd
import smtplib
import ssl
import tomllib
from collections.abc import Callable
from email.message import EmailMessage
from pathlib import Path
from typing import Protocol, runtime_checkable

from loguru import logger
from pydantic import BaseModel, NameEmail, TypeAdapter, ValidationError

from workspaces.core.errors import ConfigError, NotificationTransportError, NotificationUserError
from workspaces.core.models.enums import MailKind
from workspaces.core.notify.templates import render
from workspaces.core.settings import AuthMethod, SmtpSettings, TlsMode

USER_CONFIG = Path(".config/workspaces.toml")
"""Per-user configuration, relative to the user's home directory."""

SMTP_TIMEOUT = 60


@runtime_checkable
class Mailer(Protocol):
    def send(self, sender: str, recipient: str, subject: str, body: str) -> None:
        """Deliver one plain-text mail.  Raises ``NotificationTransportError``."""
        ...


# -- Recipients ------------------------------------------------------------------


class UserConfig(BaseModel):
    email: NameEmail


_mailbox = TypeAdapter(NameEmail)


def parse_mailbox(value: str) -> str:
    """Validate ``addr`` or ``Name <addr>``.  Raises ``NotificationUserError``."""
    try:
        return str(_mailbox.validate_python(value))
    except ValidationError as exc:
        msg = f"invalid mailbox {value!r}: {exc.errors()[0]['msg']}"
        raise NotificationUserError(msg) from None


def resolve_recipient(username: str) -> str:
    """Return the mailbox configured by *username*."""
    try:
        home = Path(pwd.getpwnam(username).pw_dir)
    except KeyError:
        msg = f"User not found: {username}"
        raise NotificationUserError(msg) from None

    path = home / USER_CONFIG
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"User configuration read error ({path}): {exc}"
        raise NotificationUserError(msg) from exc

    try:
        config = UserConfig.model_validate(tomllib.loads(raw))
    except (tomllib.TOMLDecodeError, ValidationError) as exc:
        msg = f"User configuration parsing error ({path}): {exc}"
        raise NotificationUserError(msg) from exc
    return str(config.email)


# -- SMTP ------------------------------------------------------------------------


def split_host_port(relay: str) -> tuple[str, int | None]:
    """Parse ``host``, ``host:port`` or ``[ipv6]:port``."""
    if relay.startswith("["):
        host, sep, rest = relay[1:].partition("]:")
        if sep:
            return host, int(rest) if rest.isdigit() else None
    host, sep, port = relay.rpartition(":")
    if sep and port.isdigit():
        return host, int(port)
    return relay, None


class SmtpMailer:
    """SMTP transport.

    ``wrapper`` TLS connects with implicit TLS (default port 465);
    ``starttls`` upgrades a plain connection (default port 587).  A new
    connection is opened per mail; a maintenance run sends few of them.
    """

    def __init__(self, settings: SmtpSettings) -> None:
        self._settings = settings
        self._host, self._port = split_host_port(settings.relay)

    @property
    def default_sender(self) -> str:
        """The configured ``from`` address, else the SMTP username."""
        if self._settings.from_ is not None:
            return str(self._settings.from_)
        return parse_mailbox(self._settings.username)

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self._settings.tls == TlsMode.WRAPPER:
            return smtplib.SMTP_SSL(self._host, self._port or 465, context=context, timeout=SMTP_TIMEOUT)
        client = smtplib.SMTP(self._host, self._port or 587, timeout=SMTP_TIMEOUT)
        client.starttls(context=context)
        return client

    def _login(self, client: smtplib.SMTP) -> None:
        username = self._settings.username
        password = self._settings.password.get_secret_value()
        if self._settings.auth is None:
            client.login(username, password)
            return
        client.ehlo_or_helo_if_needed()
        client.user, client.password = username, password
        if self._settings.auth == AuthMethod.PLAIN:
            client.auth("PLAIN", client.auth_plain)
        else:
            client.auth("LOGIN", client.auth_login)

    def send(self, sender: str, recipient: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(body)

        try:
            with self._connect() as client:
                self._login(client)
                client.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            msg = f"SMTP error while sending to {recipient} via {self._settings.relay}: {exc}"
            raise NotificationTransportError(msg) from exc
        logger.debug("Mail sent to {}: {}", recipient, subject)


# -- Notifier --------------------------------------------------------------------


class Notifier:
    """Sends rendered mails to workspace owners."""

    def __init__(
        self,
        mailer: Mailer,
        sender: str,
        *,
        recipients: Callable[[str], str] = resolve_recipient,
    ) -> None:
        self._mailer = mailer
        self._sender = sender
        self._recipients = recipients

    @classmethod
    def from_settings(cls, settings: SmtpSettings) -> Notifier:
        mailer = SmtpMailer(settings)
        try:
            sender = mailer.default_sender
        except NotificationUserError as exc:
            msg = f"smtp: no usable sender address, set `from`: {exc}"
            raise ConfigError(msg) from None
        return cls(mailer, sender)

    def notify(self, owner: str, kind: MailKind, **template_vars: object) -> str:
        """Send a *kind* mail to *owner*; returns the recipient address."""
        recipient = self._recipients(owner)
        mail = render(kind, **template_vars)  # type: ignore[arg-type]
        self._mailer.send(self._sender, recipient, mail.subject, mail.body)
        return recipient

    def send_test(self, username: str, to: str | None = None) -> str:
        """Send a test mail to *to*, or to *username*'s configured address."""
        recipient = parse_mailbox(to) if to else self._recipients(username)
        mail = render(MailKind.TEST)
        self._mailer.send(self._sender, recipient, mail.subject, mail.body)
        return recipient
