"""Screen state machine driving one scan-to-catalog cycle at a time."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace

import structlog

from .camera import CameraBackend, CaptureSession, ScanConfig
from .client import CatalogClient
from .isbn import clip_manual, manual_candidate
from .lookup import MIN_LOADING_SECONDS, MetadataFetcher
from .models import (
    CATEGORIES,
    EDITABLE_FIELDS,
    LOCATIONS,
    BookRecord,
    CameraStatus,
    CancelToken,
    EntryMethod,
    LiveScan,
    MainMenu,
    ManualEntry,
    MetadataEntry,
    ScreenState,
    Source,
    screen_name,
)
from .saver import CatalogSaver

log = structlog.get_logger()

RESET_DELAY_SECONDS = 1.5


@dataclass
class WorkflowConfig:
    # Track author, category and sub-category and require them on save.
    detailed: bool = False
    min_loading: float = MIN_LOADING_SECONDS
    reset_delay: float = RESET_DELAY_SECONDS
    # Rapid-entry deployments open straight on the manual ISBN field.
    start_in_manual_entry: bool = False
    scan: ScanConfig = field(default_factory=ScanConfig)


class Workflow:
    """MainMenu -> (ManualEntry | LiveScan) -> MetadataEntry -> reset.

    Operator actions are methods. Navigation is synchronous: leaving a
    screen disposes the camera, cancels the reset timer and invalidates
    every in-flight lookup or save before the next screen is shown.
    Network-bound actions are coroutines; background work (scanner
    acceptance, the reset timer) is tracked and can be awaited with drain().
    """

    def __init__(
        self,
        client: CatalogClient,
        camera: CameraBackend,
        config: WorkflowConfig | None = None,
    ) -> None:
        self.config = config or WorkflowConfig()
        self.camera = camera
        self.fetcher = MetadataFetcher(client, self.config.min_loading, self.config.detailed)
        self.saver = CatalogSaver(client, self.config.detailed)
        self._screen: ScreenState = ManualEntry() if self.config.start_in_manual_entry else MainMenu()
        self._session: CaptureSession | None = None
        self._tokens: list[CancelToken] = []
        self._reset_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def screen(self) -> ScreenState:
        return self._screen

    @property
    def record(self) -> BookRecord | None:
        if isinstance(self._screen, MetadataEntry):
            return self._screen.record
        return None

    # ---- navigation ----

    def _leave(self) -> None:
        if self._session is not None and not self._session.disposed:
            release = self._session.dispose()
            if release is not None:
                self._track(release)
        for token in self._tokens:
            token.cancel()
        self._tokens.clear()
        if self._reset_task is not None:
            self._reset_task.cancel()
            self._reset_task = None

    def _go(self, screen: ScreenState) -> None:
        previous = screen_name(self._screen)
        self._leave()
        self._screen = screen
        log.debug("screen_changed", previous=previous, current=screen_name(screen))

    def show_main_menu(self) -> None:
        """Back to the menu; any record in progress is dropped."""
        self._go(MainMenu())

    def show_manual_entry(self) -> None:
        self._go(ManualEntry())

    async def open_scanner(self) -> None:
        """Show the live scanner and bring up a fresh capture session."""
        previous = self._session
        screen = LiveScan(status=CameraStatus.IDLE)
        self._go(screen)

        def on_status(status: CameraStatus, message: str) -> None:
            screen.status = status
            screen.message = message

        session = CaptureSession(self.camera, self._on_scanned, self.config.scan, on_status=on_status)
        self._session = session
        await session.start(wait_for=previous.released() if previous is not None else None)

    # ---- ISBN intake ----

    async def type_isbn(self, text: str) -> None:
        """Update the manual ISBN field; 13 digits start the lookup."""
        screen = self._screen
        if not isinstance(screen, ManualEntry):
            log.debug("manual_input_ignored", screen=screen_name(screen))
            return
        screen.text = clip_manual(text)
        isbn = manual_candidate(screen.text)
        if isbn is not None:
            await self._begin_fetch(isbn, EntryMethod.MANUAL)

    async def _on_scanned(self, isbn: str) -> None:
        if not isinstance(self._screen, LiveScan):
            return
        await self._begin_fetch(isbn, EntryMethod.SCAN)

    async def _begin_fetch(self, isbn: str, entry_method: EntryMethod) -> None:
        screen = MetadataEntry(record=BookRecord(isbn=isbn, entry_method=entry_method))
        self._go(screen)
        token = CancelToken(f"lookup:{isbn}")
        self._tokens.append(token)
        log.info("lookup_started", isbn=isbn, entry_method=entry_method.value)
        await self.fetcher.fetch(screen, token)

    # ---- metadata entry ----

    def set_field(self, name: str, value: str) -> bool:
        """Edit one field of the record on screen. Returns False if the edit was ignored."""
        return not self.set_fields({name: value})

    def set_fields(self, values: dict[str, str]) -> list[str]:
        """Edit several fields at once; all of them apply or none do.

        Returns the names of edits the form ignored (read-only or untracked
        fields, or an inert form). Unknown names and values outside the
        vocabularies raise ValueError before anything is written.
        """
        for name in values:
            if name not in EDITABLE_FIELDS:
                raise ValueError(f"Unknown field: {name}")
        screen = self._screen
        if not isinstance(screen, MetadataEntry) or screen.loading or screen.saving or screen.saved:
            log.debug("field_edit_ignored", fields=list(values), screen=screen_name(screen))
            return list(values)

        draft = replace(screen.record)
        ignored = [name for name, value in values.items() if not self._edit(screen, draft, name, value)]
        screen.record.__dict__.update(vars(draft))
        return ignored

    def _edit(self, screen: MetadataEntry, record: BookRecord, name: str, value: str) -> bool:
        detailed = self.config.detailed
        if name == "title":
            if not screen.manual_title:
                return False
            record.title = value
            record.title_source = Source.MANUAL
        elif name == "author":
            if not (detailed and screen.manual_author):
                return False
            record.author = value
            record.author_source = Source.MANUAL
        elif name == "location":
            if value not in LOCATIONS:
                raise ValueError(f"Unknown location: {value}")
            record.location = value
        elif name == "category":
            if not detailed:
                return False
            if value and value not in CATEGORIES:
                raise ValueError(f"Unknown category: {value}")
            record.category = value
            if record.sub_category not in CATEGORIES.get(value, ()):
                record.sub_category = ""
        elif name == "sub_category":
            if not detailed:
                return False
            if value and value not in CATEGORIES.get(record.category, ()):
                raise ValueError(f"Unknown sub-category for {record.category or 'no category'}: {value}")
            record.sub_category = value
        else:
            setattr(record, name, value)
        return True

    async def save(self) -> bool:
        """Submit the record on screen. Returns True on a successful save."""
        screen = self._screen
        if not isinstance(screen, MetadataEntry) or screen.loading:
            log.debug("save_unavailable", screen=screen_name(screen))
            return False
        token = CancelToken(f"save:{screen.record.isbn}")
        self._tokens.append(token)
        saved = await self.saver.save(screen, token)
        if saved and token.alive:
            self._reset_task = self._track(asyncio.get_running_loop().create_task(self._reset_after(screen)))
        return saved

    async def _reset_after(self, screen: MetadataEntry) -> None:
        await asyncio.sleep(self.config.reset_delay)
        if self._screen is not screen:
            return
        self._reset_task = None
        if screen.record.entry_method is EntryMethod.MANUAL:
            self._go(ManualEntry())
        else:
            self._go(MainMenu())
        log.info("workflow_reset", destination=screen_name(self._screen))

    # ---- background work ----

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _pending(self) -> list[asyncio.Task]:
        pending = [t for t in self._tasks if not t.done()]
        session = self._session
        if session is not None and session.accept_task is not None and not session.accept_task.done():
            pending.append(session.accept_task)
        return pending

    async def drain(self) -> None:
        """Wait for scanner hand-offs, camera releases and the reset timer."""
        while True:
            pending = self._pending()
            if not pending:
                return
            done, _ = await asyncio.wait(pending)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    raise task.exception()

    async def close(self) -> None:
        """Tear down the current screen and wait for the camera to let go."""
        self._leave()
        await self.drain()
