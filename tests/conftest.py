"""Shared fixtures: MIME message builders and fake IMAP objects."""

from __future__ import annotations

import socket
import socketserver
import threading
import time
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any, Callable

import pytest

from config.settings import Settings
from domain.models import FetchedMessage

PDF_BYTES = b"%PDF-1.4\n1 0 obj << /Type /Catalog >> endobj\n%%EOF\n"


def attachment(
    filename: str | None,
    *,
    ctype: str = "application/pdf",
    data: bytes = PDF_BYTES,
    encoding: str = "base64",
) -> MIMEBase:
    maintype, subtype = ctype.split("/")
    part = MIMEBase(maintype, subtype)
    part.set_payload(data)
    if encoding == "base64":
        encoders.encode_base64(part)
    elif encoding == "quoted-printable":
        encoders.encode_quopri(part)
    else:
        part["Content-Transfer-Encoding"] = encoding
    if filename is not None:
        part.add_header("Content-Disposition", "attachment", filename=filename)
    return part


def mixed(*parts: Any, subject: str | None = None, subtype: str = "mixed") -> MIMEMultipart:
    msg = MIMEMultipart(subtype)
    if subject is not None:
        msg["Subject"] = subject
        msg["From"] = "sender@example.com"
        msg["To"] = "inbox@example.com"
    for p in parts:
        msg.attach(p)
    return msg


def nested(depth: int, leaf: Any) -> MIMEMultipart:
    """`depth` multipart/mixed containers below the top-level one, leaf at the bottom."""
    inner: Any = leaf
    for _ in range(depth):
        inner = mixed(MIMEText("forwarded"), inner)
    return mixed(MIMEText("body"), inner, subject="Nested")


@pytest.fixture
def pdf_bytes() -> bytes:
    return PDF_BYTES


@pytest.fixture
def build() -> Any:
    """Access to the message builders from tests."""

    class _Builders:
        attachment = staticmethod(attachment)
        mixed = staticmethod(mixed)
        nested = staticmethod(nested)
        text = staticmethod(MIMEText)

    return _Builders


@pytest.fixture
def invoice_message() -> bytes:
    """Top-level mixed with a forwarded (nested mixed) message carrying Invoice 01.pdf."""
    forwarded = mixed(MIMEText("See attached invoice."), attachment("Invoice 01.pdf"))
    return mixed(MIMEText("Fwd below"), forwarded, subject="Fwd: invoice").as_bytes()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        SERVER="imap.example.com:993",
        USER="user@example.com",
        PASSWORD="secret",
        DESTINATION=str(tmp_path / "pdfs"),
    )


class FakeSession:
    """In-memory MailSession recording every call made by the fetch cycle."""

    def __init__(self, messages: dict[int, bytes] | None = None) -> None:
        self.messages = dict(messages or {})
        self.calls: list[tuple[str, tuple[int, ...]]] = []
        self.search_error: Exception | None = None
        self.fetch_error: Exception | None = None

    def search_unseen(self) -> tuple[int, ...]:
        self.calls.append(("search", ()))
        if self.search_error:
            raise self.search_error
        return tuple(sorted(self.messages))

    def fetch_bodies(self, uids: Any) -> list[FetchedMessage]:
        uids = tuple(uids)
        self.calls.append(("fetch", uids))
        if self.fetch_error:
            raise self.fetch_error
        return [FetchedMessage(uid=u, raw=self.messages[u]) for u in uids]

    def mark_seen(self, uids: Any) -> None:
        self.calls.append(("mark_seen", tuple(uids)))

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def fake_session() -> Callable[..., FakeSession]:
    return FakeSession


class FakeSocket:
    def __init__(self) -> None:
        self.timeout: float | None = None

    def settimeout(self, value: float) -> None:
        self.timeout = value


class FakeIMAPClient:
    """Stand-in for imapclient.IMAPClient with scriptable responses.

    Mailbox contents and fetch timeouts are scripted on the class so they
    survive a reconnect. After a timeout the instance behaves like a real
    socket file: every later read fails.
    """

    instances: list["FakeIMAPClient"] = []
    welcome_banner = b"* OK IMAP4rev1 ready"
    login_failure: Exception | None = None
    connect_failure: Exception | None = None
    mailbox: dict[int, dict[bytes, Any]] = {}
    pending_fetch_timeouts = 0

    def __init__(self, host: str, port: int = 993, ssl: bool = True, timeout: Any = None) -> None:
        if FakeIMAPClient.connect_failure is not None:
            raise FakeIMAPClient.connect_failure
        self.host = host
        self.port = port
        self.ssl = ssl
        self.timeout = timeout
        self.welcome = FakeIMAPClient.welcome_banner
        self.calls: list[tuple[str, Any]] = []
        self.search_result: list[int] = []
        self.login_error = FakeIMAPClient.login_failure
        self.timed_out = False
        self._socket = FakeSocket()
        FakeIMAPClient.instances.append(self)

    def _read_check(self) -> None:
        if self.timed_out:
            raise OSError("cannot read from timed out object")

    def login(self, user: str, password: str) -> None:
        self.calls.append(("login", user))
        self._read_check()
        if self.login_error:
            raise self.login_error

    def select_folder(self, folder: str, readonly: bool = False) -> dict:
        self.calls.append(("select_folder", (folder, readonly)))
        self._read_check()
        return {}

    def search(self, criteria: Any) -> list[int]:
        self.calls.append(("search", criteria))
        self._read_check()
        return list(self.search_result)

    def fetch(self, uids: Any, items: Any) -> dict[int, dict[bytes, Any]]:
        self.calls.append(("fetch", (list(uids), list(items))))
        self._read_check()
        if FakeIMAPClient.pending_fetch_timeouts:
            FakeIMAPClient.pending_fetch_timeouts -= 1
            self.timed_out = True
            raise socket.timeout("timed out")
        return {u: FakeIMAPClient.mailbox[u] for u in uids if u in FakeIMAPClient.mailbox}

    def add_flags(self, uids: Any, flags: Any, silent: bool = False) -> None:
        self.calls.append(("add_flags", (list(uids), list(flags), silent)))
        self._read_check()

    def socket(self) -> FakeSocket:
        return self._socket

    def logout(self) -> bytes:
        self.calls.append(("logout", self._socket.timeout))
        self._read_check()
        return b"BYE"

    def shutdown(self) -> None:
        self.calls.append(("shutdown", None))

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def fake_imap(monkeypatch: pytest.MonkeyPatch) -> type[FakeIMAPClient]:
    """Patch IMAPClient inside the session module; returns the fake class."""
    import infrastructure.email.imap_client as imap_client

    FakeIMAPClient.instances = []
    FakeIMAPClient.welcome_banner = b"* OK IMAP4rev1 ready"
    FakeIMAPClient.login_failure = None
    FakeIMAPClient.connect_failure = None
    FakeIMAPClient.mailbox = {}
    FakeIMAPClient.pending_fetch_timeouts = 0
    monkeypatch.setattr(imap_client, "IMAPClient", FakeIMAPClient)
    return FakeIMAPClient


class StubIMAPHandler(socketserver.StreamRequestHandler):
    """Minimal plain-text IMAP server: enough for LOGIN, SELECT, UID FETCH and LOGOUT."""

    server: "StubIMAPServer"

    def handle(self) -> None:
        try:
            self._serve()
        except OSError:
            # the client dropped the connection after a timeout
            pass

    def _serve(self) -> None:
        self.wfile.write(b"* OK IMAP4rev1 stub ready\r\n")
        for line in self.rfile:
            tag, _, rest = line.rstrip(b"\r\n").partition(b" ")
            command = rest.upper()
            if command.startswith(b"CAPABILITY"):
                self.wfile.write(b"* CAPABILITY IMAP4rev1\r\n")
            elif command.startswith(b"SELECT"):
                self.server.selects += 1
                self.wfile.write(b"* 1 EXISTS\r\n* FLAGS (\\Seen)\r\n")
            elif command.startswith(b"UID FETCH"):
                if self.server.take_slow_fetch():
                    time.sleep(self.server.fetch_delay)
                body = self.server.body
                self.wfile.write(
                    b"* 1 FETCH (UID 7 FLAGS () BODY[] {%d}\r\n" % len(body) + body + b")\r\n"
                )
            elif command.startswith(b"LOGOUT"):
                self.wfile.write(b"* BYE logging out\r\n" + tag + b" OK LOGOUT completed\r\n")
                return
            self.wfile.write(tag + b" OK completed\r\n")


class StubIMAPServer(socketserver.ThreadingTCPServer):
    daemon_threads = True

    def __init__(self, slow_fetches: int, fetch_delay: float) -> None:
        super().__init__(("127.0.0.1", 0), StubIMAPHandler)
        self.slow_fetches = slow_fetches
        self.fetch_delay = fetch_delay
        self.selects = 0
        self.body = b"Subject: slow link\r\n\r\nhello\r\n"
        self._lock = threading.Lock()

    @property
    def port(self) -> int:
        return self.server_address[1]

    def take_slow_fetch(self) -> bool:
        with self._lock:
            if self.slow_fetches <= 0:
                return False
            self.slow_fetches -= 1
            return True


@pytest.fixture
def imap_server() -> Any:
    """Factory for a local IMAP server whose first `slow_fetches` FETCH answers are delayed."""
    servers: list[StubIMAPServer] = []

    def _start(slow_fetches: int = 0, fetch_delay: float = 0.0) -> StubIMAPServer:
        server = StubIMAPServer(slow_fetches, fetch_delay)
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        return server

    yield _start
    for server in servers:
        server.shutdown()
        server.server_close()
