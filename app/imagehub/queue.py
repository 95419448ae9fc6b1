"""
Generation Queue
Walks the prompt list in order, one generation request at a time,
recording each outcome on its item.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from .clients import GeneratorResult, ProviderRegistry
from .clients.base import failed
from .credentials import CredentialStore
from .errors import (
    ItemNotRetryableError,
    MissingCredentialError,
    NoPromptsError,
    NotAuthorizedError,
)
from .naming import derive_filename, split_prompts
from .session import Session

logger = logging.getLogger(__name__)

PENDING = "pending"
OK = "ok"
FAIL = "fail"


class QueueStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


@dataclass
class PromptItem:
    """One prompt and the outcome of generating it."""
    prompt: str
    name: str
    status: str = PENDING
    image_data: Optional[bytes] = None
    mime_type: Optional[str] = None
    error: Optional[str] = None

    def mark_pending(self):
        self.status = PENDING
        self.image_data = None
        self.mime_type = None
        self.error = None

    def mark_ok(self, data: bytes, mime_type: str):
        self.status = OK
        self.image_data = data
        self.mime_type = mime_type
        self.error = None

    def mark_fail(self, error: str):
        self.status = FAIL
        self.image_data = None
        self.mime_type = None
        self.error = error

    def to_dict(self, index: int) -> dict:
        return {
            "index": index,
            "prompt": self.prompt,
            "name": self.name,
            "status": self.status,
            "error": self.error,
            "has_image": self.image_data is not None,
        }


@dataclass
class QueueState:
    """In-memory state of the active session. Not persisted."""
    items: List[PromptItem] = field(default_factory=list)
    cursor: int = 0
    running: bool = False
    paused: bool = False
    active_provider: str = ""
    prompt_text: str = ""
    # Bumped whenever items are rebuilt or cleared
    batch: int = 0


def build_items(text: str) -> List[PromptItem]:
    """One pending item per non-blank line, with names unique in the batch."""
    names: Set[str] = set()
    items = []
    for prompt in split_prompts(text):
        name = derive_filename(prompt, names)
        names.add(name)
        items.append(PromptItem(prompt=prompt, name=name))
    return items


class GenerationQueue:
    """
    Sequential generation worker.

    A single asyncio task dispatches items[cursor] through the active
    provider, waits for the outcome, writes it back to the item captured at
    dispatch time and advances the cursor. Pause and stop only suppress the
    next dispatch; an in-flight request is always allowed to finish.
    """

    def __init__(self, registry: ProviderRegistry, credentials: CredentialStore,
                 session: Session, provider: Optional[str] = None):
        self.registry = registry
        self.credentials = credentials
        self.session = session

        names = registry.names()
        self.state = QueueState(active_provider=provider or (names[0] if names else ""))
        self._task: Optional[asyncio.Task] = None
        self._retry_tasks: Set[asyncio.Task] = set()
        self._locks: Dict[int, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def items(self) -> List[PromptItem]:
        return self.state.items

    @property
    def status(self) -> QueueStatus:
        if self.state.running:
            return QueueStatus.PAUSED if self.state.paused else QueueStatus.RUNNING
        if self.state.items and self.state.cursor >= len(self.state.items):
            return QueueStatus.COMPLETED
        return QueueStatus.IDLE

    @property
    def progress(self) -> int:
        total = len(self.state.items)
        return round(self.state.cursor / total * 100) if total else 0

    def ok_items(self) -> List[PromptItem]:
        return [item for item in self.state.items if item.status == OK and item.image_data is not None]

    def snapshot(self) -> dict:
        items = self.state.items
        return {
            "status": self.status.value,
            "cursor": self.state.cursor,
            "total": len(items),
            "completed": sum(1 for item in items if item.status == OK),
            "failed": sum(1 for item in items if item.status == FAIL),
            "progress": self.progress,
            "running": self.state.running,
            "paused": self.state.paused,
            "provider": self.state.active_provider,
            "prompt_text": self.state.prompt_text,
            "items": [item.to_dict(i) for i, item in enumerate(items)],
        }

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def set_prompt_text(self, text: str) -> bool:
        """
        Rebuild the items from new prompt text.

        Returns:
            True if the items were rebuilt. Edits made while a run is in
            progress (including paused) are ignored.
        """
        text = text or ""
        if self.state.running:
            logger.info("Ignoring prompt edit while a run is in progress")
            return False
        if text == self.state.prompt_text:
            return False

        self.state.prompt_text = text
        self.state.items = build_items(text)
        self.state.cursor = 0
        self._new_batch()
        logger.info(f"Queue rebuilt with {len(self.state.items)} prompts")
        return True

    def select_provider(self, provider: str):
        self.registry.get(provider)
        self.state.active_provider = provider

    def start(self, provider: Optional[str] = None):
        """
        Start a run from the first item.

        Raises:
            PreconditionError: login, provider, prompts or API key missing.
            State is left untouched.
        """
        if self.state.running:
            logger.info("Start ignored: queue already running")
            return

        provider = provider or self.state.active_provider
        self._check_start(provider)

        self.state.active_provider = provider
        self.state.cursor = 0
        self.state.running = True
        self.state.paused = False
        logger.info(f"Starting run of {len(self.state.items)} prompts with {provider}")
        self._ensure_worker()

    def pause(self):
        if self.state.running and not self.state.paused:
            self.state.paused = True
            logger.info(f"Queue paused at {self.state.cursor}/{len(self.state.items)}")

    def resume(self):
        """Resume a paused run, or continue a stopped one from its cursor."""
        if self.state.running:
            if self.state.paused:
                self.state.paused = False
                logger.info("Queue resumed")
                self._ensure_worker()
            return

        self._check_start(self.state.active_provider)
        self.state.running = True
        self.state.paused = False
        logger.info(f"Continuing run from {self.state.cursor}/{len(self.state.items)}")
        self._ensure_worker()

    def stop(self):
        if self.state.running:
            logger.info(f"Queue stopped at {self.state.cursor}/{len(self.state.items)}")
        self.state.running = False
        self.state.paused = False

    def clear(self):
        """Full reset: prompt text, items and cursor."""
        self.state.running = False
        self.state.paused = False
        self.state.prompt_text = ""
        self.state.items = []
        self.state.cursor = 0
        self._new_batch()
        logger.info("Queue cleared")

    async def retry(self, index: int) -> PromptItem:
        """Regenerate one failed item with the active provider."""
        item = self._retryable(index)
        await self._retry_item(self.state.batch, index, item, self.state.active_provider)
        return item

    def schedule_retry(self, index: int) -> asyncio.Task:
        """Validate a retry now and run it in the background."""
        item = self._retryable(index)
        task = asyncio.get_running_loop().create_task(
            self._retry_item(self.state.batch, index, item, self.state.active_provider)
        )
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)
        return task

    async def join(self):
        """Wait for the worker and any retries to finish."""
        while self._task is not None and not self._task.done():
            await self._task
        if self._retry_tasks:
            await asyncio.gather(*list(self._retry_tasks))

    async def shutdown(self):
        self.stop()
        tasks = list(self._retry_tasks)
        if self._task is not None:
            tasks.append(self._task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _new_batch(self):
        self.state.batch += 1
        self._locks = {}

    def _lock_for(self, index: int) -> asyncio.Lock:
        return self._locks.setdefault(index, asyncio.Lock())

    def _check_start(self, provider: str):
        if not self.session.logged_in:
            raise NotAuthorizedError("Login required")
        self.registry.get(provider)
        if not self.state.items:
            raise NoPromptsError("No prompts to generate")
        if not self.credentials.get(provider):
            raise MissingCredentialError(f"API key required for {provider}")

    def _retryable(self, index: int) -> PromptItem:
        if index < 0 or index >= len(self.state.items):
            raise IndexError(f"No item at index {index}")
        item = self.state.items[index]
        if item.status != FAIL:
            raise ItemNotRetryableError(f"Item {index} is {item.status}, only failed items can be retried")
        self.registry.get(self.state.active_provider)
        return item

    def _ensure_worker(self):
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    def _may_dispatch(self, batch: int, index: int) -> bool:
        return (
            self.state.running
            and not self.state.paused
            and self.state.batch == batch
            and self.state.cursor == index
        )

    async def _run(self):
        while self.state.running and not self.state.paused:
            index = self.state.cursor
            if index >= len(self.state.items):
                self.state.running = False
                self.state.paused = False
                logger.info(f"Queue completed: {len(self.state.items)} prompts processed")
                return
            await self._dispatch(self.state.batch, index)

    async def _dispatch(self, batch: int, index: int):
        item = self.state.items[index]
        provider = self.state.active_provider

        async with self._lock_for(index):
            if not self._may_dispatch(batch, index):
                return
            logger.info(f"Dispatching {index + 1}/{len(self.state.items)}: {item.name}")
            result = await self._attempt(provider, item.prompt)

            if self.state.batch != batch:
                logger.info(f"Discarding result for {item.name}: queue was rebuilt")
                return
            self._apply(item, result)

        # A restart may have moved the cursor while the request was in flight
        if self.state.cursor == index:
            self.state.cursor = index + 1

    async def _retry_item(self, batch: int, index: int, item: PromptItem, provider: str):
        async with self._lock_for(index):
            if self.state.batch != batch or item.status != FAIL:
                return
            item.mark_pending()
            logger.info(f"Retrying {item.name} with {provider}")
            result = await self._attempt(provider, item.prompt)
            if self.state.batch != batch:
                return
            self._apply(item, result)

    async def _attempt(self, provider: str, prompt: str) -> GeneratorResult:
        try:
            generator = self.registry.get(provider)
            result = await generator.generate(prompt, self.credentials.get(provider))
        except Exception as e:
            logger.error(f"Generation error for '{prompt[:50]}': {e}")
            return failed(str(e) or type(e).__name__)

        if not isinstance(result, GeneratorResult):
            logger.error(f"{provider} returned {type(result).__name__} instead of a GeneratorResult")
            return failed("Invalid result from provider")
        if not result.success and not result.error:
            result.error = "Unknown error"
        return result

    def _apply(self, item: PromptItem, result: GeneratorResult):
        if result.success:
            item.mark_ok(result.data, result.mime_type)
            logger.info(f"Successfully generated: {item.name}")
        else:
            item.mark_fail(result.error)
            logger.warning(f"Failed to generate: {item.name} - {result.error}")
