"""
In-process mail queue.

Requests enqueue messages and return immediately; a background worker
renders and sends them, retrying failed deliveries a few times before
giving up.
"""
import asyncio
from typing import Optional, Union

from backoffice.core import config
from backoffice.features.mail.messages import MailMessage, WelcomeMessage
from backoffice.features.mail.transport import MailTransport, build_transport
from backoffice.utils import get_logger


log = get_logger(__name__)


class MailOutbox:
    def __init__(
        self,
        transport: Optional[MailTransport] = None,
        max_attempts: int = config.MAIL_MAX_ATTEMPTS,
        retry_delay: float = config.MAIL_RETRY_DELAY,
    ):
        self.transport = transport or build_transport()
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.failed: list[Union[MailMessage, WelcomeMessage]] = []
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

    @property
    def queue(self) -> asyncio.Queue:
        # Created lazily so the queue binds to the running loop.
        if self._queue is None:
            self._queue = asyncio.Queue()
        return self._queue

    def enqueue(self, message: Union[MailMessage, WelcomeMessage]) -> None:
        """Queue a message. Templates are rendered by the worker, not the caller."""
        self.queue.put_nowait(message)
        log.info(f"Queued {type(message).__name__} for {message.to}")

    def prepare(self, message: Union[MailMessage, WelcomeMessage]) -> Optional[MailMessage]:
        """Render queued templates. A message that cannot be rendered is failed for good."""
        if not isinstance(message, WelcomeMessage):
            return message
        try:
            return message.render()
        except Exception as e:
            log.error(f"Could not render mail for {message.to}: {e}", exc_info=True)
            self.failed.append(message)
            return None

    async def deliver(self, message: MailMessage) -> bool:
        """Attempt one delivery. Returns False when the message should be retried."""
        message.attempts += 1
        try:
            await asyncio.to_thread(self.transport.send, message)
            return True
        except Exception as e:
            log.warning(
                f"Mail to {message.to} failed (attempt {message.attempts}/{self.max_attempts}): {e}"
            )
        if message.attempts >= self.max_attempts:
            log.error(f"Giving up on mail {message.subject!r} to {message.to}")
            self.failed.append(message)
            return True
        return False

    async def drain(self) -> None:
        """Deliver everything currently queued, retrying inline without delay."""
        while not self.queue.empty():
            mail = self.prepare(self.queue.get_nowait())
            try:
                while mail is not None and not await self.deliver(mail):
                    pass
            finally:
                self.queue.task_done()

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            mail = self.prepare(await self.queue.get())
            try:
                if mail is not None and not await self.deliver(mail):
                    loop.call_later(self.retry_delay, self.queue.put_nowait, mail)
            finally:
                self.queue.task_done()

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())
            log.info("Mail outbox worker started")

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        log.info("Mail outbox worker stopped")
