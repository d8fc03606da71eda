# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Post-commit notification queue.

Notices are only scheduled after the admission transaction has committed.
Each delivery runs as its own task; failures are logged and never reach the
caller.
"""

import asyncio
import logging

from admissions.infrastructure.notifications.base import (
    CredentialNotice,
    DeliveryError,
    NotificationDispatcher,
)

logger = logging.getLogger(__name__)


class PostCommitNotifier:
    """Schedules best-effort delivery of credential notices.

    Attributes:
        _dispatcher: Dispatcher used for delivery.
        _pending: Deliveries still in flight.
    """

    def __init__(self, dispatcher: NotificationDispatcher) -> None:
        self._dispatcher = dispatcher
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    @property
    def pending(self) -> int:
        """Number of deliveries not yet finished."""
        return len(self._pending)

    def schedule(self, notice: CredentialNotice) -> asyncio.Task[None]:
        """Start delivering a notice in the background.

        Must be called from a running event loop.
        """
        task = asyncio.create_task(self._deliver(notice), name=f"notify:{notice.identifier}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, notice: CredentialNotice) -> None:
        try:
            await self._dispatcher.notify(notice)
        except DeliveryError as e:
            logger.warning("Credential notice for %s not delivered: %s", notice.identifier, e)
        except Exception:
            logger.exception("Unexpected error delivering notice for %s", notice.identifier)

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Drain outstanding deliveries and close the dispatcher."""
        await self.drain()
        await self._dispatcher.close()
