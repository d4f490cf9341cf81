"""Unit-of-work wrapper with post-commit callbacks.

Usage::

    async with Transaction(session) as tx:
        ...  # mutate through the session
        tx.after_commit(lambda: notifier.send_group_invite_created(notices))

The session commits when the block exits cleanly and rolls back on any
exception. Callbacks registered with ``after_commit`` run only after the
commit succeeded, in registration order. A failing callback is logged and
does not affect the committed state or the remaining callbacks.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

AfterCommitHook = Callable[[], Awaitable[Any] | Any]


class Transaction:
    def __init__(self, session: AsyncSession):
        self.session = session
        self._hooks: list[AfterCommitHook] = []

    def after_commit(self, hook: AfterCommitHook) -> None:
        self._hooks.append(hook)

    async def __aenter__(self) -> "Transaction":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self._hooks.clear()
            await self.session.rollback()
            return False

        try:
            await self.session.commit()
        except Exception:
            self._hooks.clear()
            await self.session.rollback()
            raise

        hooks, self._hooks = self._hooks, []
        for hook in hooks:
            try:
                result = hook()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Post-commit hook %r failed", hook)
        return False
