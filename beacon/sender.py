"""
Outbound delivery for notifiers.

Notifiers never talk to the network themselves; they hand a fully formed
request to a Sender. ``HttpSender`` performs real HTTP and SMTP calls,
``RecordingSender`` records requests for inspection instead.
"""

import smtplib
import threading
from abc import ABC, abstractmethod
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from email.message import EmailMessage as MIMEMessage
from email.utils import formataddr
from typing import TYPE_CHECKING, TypeVar

import requests

from beacon import __version__
from beacon.config import SmtpConfig
from beacon.errors import TransportError
from beacon.logging_config import get_logger

if TYPE_CHECKING:
    from beacon.core import NotificationContext

logger = get_logger(__name__)

T = TypeVar("T")

# Calls in flight at once per HttpSender
DEFAULT_MAX_WORKERS = 8

# Seconds between cancellation checks while a call is in flight
CANCEL_POLL_INTERVAL = 0.05


@dataclass(frozen=True)
class WebhookRequest:
    """An HTTP request to an integration endpoint."""
    url: str
    body: str
    content_type: str = "application/json"
    http_method: str = "POST"
    user: str = ""
    password: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class WebhookResponse:
    """Status and body returned by the endpoint."""
    status_code: int
    body: str = ""


@dataclass(frozen=True)
class EmailMessage:
    """
    An email to one or more recipients.

    With ``single_email`` every address goes on one message; otherwise each
    address receives its own copy.
    """
    to: tuple[str, ...]
    subject: str
    body: str
    single_email: bool = False


class Sender(ABC):
    """Delivers requests built by notifiers."""

    @abstractmethod
    def send_webhook(self, ctx: "NotificationContext", request: WebhookRequest) -> WebhookResponse:
        """
        Deliver an HTTP request.

        Raises:
            TransportError: On network failure, timeout or cancellation
        """
        raise NotImplementedError

    @abstractmethod
    def send_email(self, ctx: "NotificationContext", message: EmailMessage) -> None:
        """
        Deliver an email.

        Raises:
            TransportError: On SMTP failure, timeout or cancellation
        """
        raise NotImplementedError


class HttpSender(Sender):
    """
    Sender backed by a pooled requests session and SMTP.

    Calls run on a small worker pool so that a cancelled or expired context
    returns to the caller promptly while the abandoned call finishes in the
    background. The session is shared by all workers; call ``close()`` (or
    use the sender as a context manager) to release its connections.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        smtp: SmtpConfig | None = None,
        user_agent: str = f"Beacon/{__version__}",
        max_workers: int = DEFAULT_MAX_WORKERS
    ):
        self.timeout = timeout
        self.smtp = smtp or SmtpConfig()
        self._session = requests.Session()
        self._session.headers["User-Agent"] = user_agent
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="beacon-sender")

    def _timeout_for(self, ctx: "NotificationContext") -> float:
        remaining = ctx.deadline_remaining()
        if remaining is None:
            return self.timeout
        return max(min(self.timeout, remaining), 0.001)

    def _wait(self, ctx: "NotificationContext", future: Future[T]) -> T:
        """
        Wait for a submitted call, giving up when the context is cancelled.

        A result that is already available is returned even if the deadline
        passed meanwhile.

        Raises:
            TransportError: If the context was cancelled or expired first
            Exception: Whatever the call itself raised
        """
        if ctx.cancel_event is None and ctx.timeout is None:
            return future.result()
        while True:
            try:
                return future.result(timeout=CANCEL_POLL_INTERVAL)
            except FutureTimeoutError:
                ctx.check_cancelled()

    def send_webhook(self, ctx: "NotificationContext", request: WebhookRequest) -> WebhookResponse:
        ctx.check_cancelled()
        timeout = self._timeout_for(ctx)
        headers = {"Content-Type": request.content_type, **request.headers}
        auth = (request.user, request.password) if request.user else None

        logger.debug("%s %s (timeout %.1fs)", request.http_method, request.url, timeout)
        future = self._pool.submit(
            self._session.request,
            request.http_method,
            request.url,
            data=request.body.encode("utf-8"),
            headers=headers,
            auth=auth,
            timeout=timeout
        )
        try:
            response = self._wait(ctx, future)
        except requests.Timeout as e:
            raise TransportError(f"request to {request.url} timed out after {timeout:.1f}s") from e
        except requests.RequestException as e:
            raise TransportError(f"request to {request.url} failed: {e}") from e

        # A response that arrived is reported even past the deadline
        return WebhookResponse(response.status_code, response.text)

    def send_email(self, ctx: "NotificationContext", message: EmailMessage) -> None:
        ctx.check_cancelled()
        future = self._pool.submit(self._send_smtp, ctx, message, self._timeout_for(ctx))
        try:
            self._wait(ctx, future)
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(f"failed to send email via {self.smtp.host}:{self.smtp.port}: {e}") from e

    def _send_smtp(self, ctx: "NotificationContext", message: EmailMessage, timeout: float) -> None:
        batches = [message.to] if message.single_email else [(address,) for address in message.to]

        with smtplib.SMTP(self.smtp.host, self.smtp.port, timeout=timeout) as client:
            if self.smtp.starttls:
                client.starttls()
            if self.smtp.user:
                client.login(self.smtp.user, self.smtp.password)
            for recipients in batches:
                # Stop between messages once the caller has given up
                ctx.check_cancelled()
                client.send_message(self._build_mime(message, recipients))

        logger.debug("Sent %d email(s) to %s", len(batches), ", ".join(message.to))

    def _build_mime(self, message: EmailMessage, recipients: tuple[str, ...]) -> MIMEMessage:
        mime = MIMEMessage()
        mime["From"] = formataddr((self.smtp.from_name, self.smtp.from_address))
        mime["To"] = ", ".join(recipients)
        mime["Subject"] = message.subject
        mime.set_content(message.body)
        return mime

    def close(self) -> None:
        """Stop the worker pool and close pooled HTTP connections."""
        self._pool.shutdown(wait=False, cancel_futures=True)
        self._session.close()

    def __enter__(self) -> "HttpSender":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class RecordingSender(Sender):
    """
    Sender that records requests instead of sending them.

    Returns ``response`` for every webhook, or raises ``error`` when one is
    scripted.
    """

    def __init__(self, response: WebhookResponse | None = None, error: Exception | None = None):
        self.response = response or WebhookResponse(200, "")
        self.error = error
        self.webhooks: list[WebhookRequest] = []
        self.emails: list[EmailMessage] = []
        self._lock = threading.Lock()

    @property
    def last_webhook(self) -> WebhookRequest | None:
        with self._lock:
            return self.webhooks[-1] if self.webhooks else None

    def send_webhook(self, ctx: "NotificationContext", request: WebhookRequest) -> WebhookResponse:
        with self._lock:
            self.webhooks.append(request)
        if self.error is not None:
            raise self.error
        return self.response

    def send_email(self, ctx: "NotificationContext", message: EmailMessage) -> None:
        with self._lock:
            self.emails.append(message)
        if self.error is not None:
            raise self.error
