"""Per-process services and the per-request context handed to handlers."""

import asyncio
from dataclasses import dataclass, field

from .config import ThreadlineConfig
from .database import Storage
from .notifications.notifier import CommentNotifier
from .services.spam import SpamClassifier
from .store.comments import CommentStore
from .store.config_store import ConfigStore
from .store.counter import CounterStore
from .utils.logging import get_logger

logger = get_logger("threadline.context")


class BackgroundTasks:
    """Strong references to fire-and-forget tasks until they finish."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def __len__(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for pending tasks, used at shutdown and in tests."""
        if self._tasks:
            await asyncio.wait(set(self._tasks), timeout=timeout)


@dataclass
class AppServices:
    """Everything shared by all requests of one process."""

    storage: Storage
    settings: ThreadlineConfig
    classifier: SpamClassifier
    notifier: CommentNotifier
    background: BackgroundTasks = field(default_factory=BackgroundTasks)

    @classmethod
    def create(cls, storage: Storage, settings: ThreadlineConfig) -> "AppServices":
        return cls(
            storage=storage,
            settings=settings,
            classifier=SpamClassifier(timeout=settings.http_timeout),
            notifier=CommentNotifier(),
        )


@dataclass
class RequestContext:
    """What a handler knows about the request it serves."""

    services: AppServices
    config: dict
    access_token: str
    ip: str
    is_admin: bool = False

    @property
    def settings(self) -> ThreadlineConfig:
        return self.services.settings

    @property
    def uid(self) -> str:
        return self.access_token

    @property
    def comments(self) -> CommentStore:
        return CommentStore(self.services.storage)

    @property
    def config_store(self) -> ConfigStore:
        return ConfigStore(self.services.storage)

    @property
    def counter(self) -> CounterStore:
        return CounterStore(self.services.storage)
