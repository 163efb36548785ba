# Overview: Best-effort owner notifications over SMTP, dispatched off the request path.

"""
Notification Side-Channel

Order and approval emails are nice-to-have: an order is persisted and
answered whether or not the owner ever gets the email.

- No SMTP configuration -> nothing is attempted; a "not configured" status
  is reported instead of an error.
- Delivery is attempted at most NOTIFY_MAX_ATTEMPTS (2) times with a fixed
  NOTIFY_RETRY_DELAY_SECONDS pause between attempts.
- Jobs run on the dispatcher's worker threads. Terminal failures are logged
  with structured fields and kept in a bounded dead-letter list.
"""

from __future__ import annotations

import logging
import smtplib
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, asdict
from email.message import EmailMessage
from typing import Callable

from ..time_utils import timestamp_now

logger = logging.getLogger(__name__)

NOT_CONFIGURED_REASON = "Email not configured"
UNAVAILABLE_REASON = "Owner notification unavailable"


class NotificationError(Exception):
    """Delivery failure. Never propagated past this module."""


@dataclass
class NotificationStatus:
    attempted: bool
    delivered: bool
    attempts: int = 0
    reason: str | None = None
    error: str | None = None

    @classmethod
    def not_configured(cls) -> "NotificationStatus":
        return cls(attempted=False, delivered=False, reason=NOT_CONFIGURED_REASON)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class MailSettings:
    host: str
    port: int
    user: str
    password: str
    secure: bool
    timeout: float
    sender: str
    owner_email: str
    max_attempts: int = 2
    retry_delay: float = 0.5


class SmtpMailer:
    def __init__(self, settings: MailSettings):
        self.settings = settings

    def send(self, message: EmailMessage) -> None:
        s = self.settings
        try:
            if s.secure:
                client = smtplib.SMTP_SSL(s.host, s.port, timeout=s.timeout)
            else:
                client = smtplib.SMTP(s.host, s.port, timeout=s.timeout)
            with client:
                if not s.secure:
                    client.ehlo()
                    if client.has_extn("starttls"):
                        client.starttls()
                        client.ehlo()
                client.login(s.user, s.password)
                client.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(str(exc)) from exc


def build_mailer(config) -> SmtpMailer | None:
    """Return a mailer when SMTP host, credentials and owner address are all configured."""
    host = (config.get("SMTP_HOST") or "").strip()
    user = (config.get("SMTP_USER") or "").strip()
    password = config.get("SMTP_PASS") or ""
    owner_email = (config.get("OWNER_EMAIL") or "").strip()
    if not host or not user or not password or not owner_email:
        return None

    return SmtpMailer(MailSettings(
        host=host,
        port=int(config.get("SMTP_PORT") or 587),
        user=user,
        password=password,
        secure=bool(config.get("SMTP_SECURE")),
        timeout=float(config.get("SMTP_TIMEOUT") or 10),
        sender=(config.get("MAIL_FROM") or user).strip(),
        owner_email=owner_email,
        max_attempts=int(config.get("NOTIFY_MAX_ATTEMPTS") or 2),
        retry_delay=float(config.get("NOTIFY_RETRY_DELAY_SECONDS", 0.5)),
    ))


def deliver_with_retry(mailer, message: EmailMessage, attempts: int = 2, delay: float = 0.5) -> NotificationStatus:
    """Try to send up to `attempts` times. Never raises on transport failure."""
    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            mailer.send(message)
            return NotificationStatus(attempted=True, delivered=True, attempts=attempt)
        except NotificationError as exc:
            last_error = exc
            logger.warning("Notification attempt %d/%d failed: %s", attempt, attempts, exc)
            if attempt < attempts:
                time.sleep(delay)

    return NotificationStatus(
        attempted=True,
        delivered=False,
        attempts=attempts,
        reason=UNAVAILABLE_REASON,
        error=str(last_error) if last_error else "Unknown email error",
    )


def _message(mailer: SmtpMailer, subject: str, lines: list[str]) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = mailer.settings.sender
    msg["To"] = mailer.settings.owner_email
    msg["Subject"] = subject
    msg.set_content("\n".join(lines))
    return msg


def _money(value) -> str:
    return f"${float(value or 0):.2f}"


def order_placed_message(mailer: SmtpMailer, order: dict, user: dict, item: dict) -> EmailMessage:
    return _message(mailer, f"New Club Merch pre-order: {item.get('name')}", [
        "A new merch pre-order was placed.",
        "",
        f"Name: {user.get('name')}",
        f"Email: {user.get('email')}",
        f"Item: {item.get('name')}",
        f"Size: {order.get('selectedSize') or 'N/A'}",
        f"Include Initials: {'Yes' if order.get('includeInitials') else 'No'}",
        f"Unit Price: {_money(order.get('unitPrice'))}",
        f"Total: {_money(order.get('totalPrice'))}",
        f"Quantity: {order.get('quantity')}",
        f"Venmo Agreed: {'Yes' if order.get('venmoAgreed') else 'No'}",
        f"Ordered At: {order.get('createdAt')}",
        f"Order ID: {order.get('id')}",
    ])


def approval_requested_message(mailer: SmtpMailer, user: dict) -> EmailMessage:
    return _message(mailer, f"Club Merch access request: {user.get('name') or user.get('email')}", [
        "A new member is waiting for approval.",
        "",
        f"Name: {user.get('name')}",
        f"Email: {user.get('email')}",
        f"Initials: {user.get('initials')}",
        f"Requested At: {user.get('createdAt')}",
        f"User ID: {user.get('id')}",
    ])


def notify_order_placed(mailer: SmtpMailer | None, order: dict, user: dict, item: dict) -> NotificationStatus:
    if mailer is None:
        return NotificationStatus.not_configured()
    s = mailer.settings
    return deliver_with_retry(mailer, order_placed_message(mailer, order, user, item), s.max_attempts, s.retry_delay)


def notify_approval_requested(mailer: SmtpMailer | None, user: dict) -> NotificationStatus:
    if mailer is None:
        return NotificationStatus.not_configured()
    s = mailer.settings
    return deliver_with_retry(mailer, approval_requested_message(mailer, user), s.max_attempts, s.retry_delay)


class NotificationDispatcher:
    """Runs notification jobs on a small thread pool, away from request handling."""

    def __init__(self, max_workers: int = 2, dead_letter_size: int = 100):
        self._max_workers = max_workers
        self._executor: ThreadPoolExecutor | None = None
        self._pending: set[Future] = set()
        self._lock = threading.Lock()
        self.dead_letters: deque = deque(maxlen=dead_letter_size)

    def init_app(self, app) -> None:
        self.shutdown()
        self._max_workers = int(app.config.get("NOTIFY_WORKERS") or 2)
        self.dead_letters.clear()
        app.extensions["notification_dispatcher"] = self

    def _pool(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="notify",
                )
            return self._executor

    def submit(self, kind: str, job: Callable[..., NotificationStatus], *args, context: dict | None = None) -> Future:
        future = self._pool().submit(job, *args)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(lambda f: self._finished(f, kind, context or {}))
        return future

    def _finished(self, future: Future, kind: str, context: dict) -> None:
        try:
            self._record(future, kind, context)
        finally:
            with self._lock:
                self._pending.discard(future)

    def _record(self, future: Future, kind: str, context: dict) -> None:
        exc = future.exception()
        if exc is not None:
            status = NotificationStatus(attempted=True, delivered=False, reason=UNAVAILABLE_REASON, error=str(exc))
        else:
            status = future.result()

        if status.delivered or not status.attempted:
            return

        entry = {"kind": kind, "failedAt": timestamp_now(), **context, **status.to_dict()}
        self.dead_letters.append(entry)
        logger.error(
            "%s notification failed after %d attempt(s): %s",
            kind,
            status.attempts,
            status.error,
            extra={"notification": entry},
        )

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until every submitted job has finished. Returns False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                pending = list(self._pending)
            if not pending:
                return True
            for future in pending:
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                try:
                    future.exception(timeout=remaining)
                except FutureTimeoutError:
                    return False
            # callbacks may still be running; loop until the set drains
            time.sleep(0.01)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
