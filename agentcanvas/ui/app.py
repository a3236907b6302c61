"""
AgentCanvas - Flet application controller.

Wires the canvas together:
- SceneModel + Viewport + LayoutEngine (shared state)
- InteractionController -> RequestDispatcher -> ApiClient (outbound)
- ProgressStream -> StreamSupervisor -> queue -> EventReconciler (inbound)
- AnimationClock driving redraws
- SnackBar notifications

Everything runs on the Flet event loop; the inbound queue is drained by a
single consumer task so stream events and input handlers never interleave
mid-handler.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import flet as ft
import httpx

from agentcanvas.api.client import ApiClient, RequestDispatcher
from agentcanvas.api.models import MutationOp, MutationRequest, WorkspaceSnapshot
from agentcanvas.core.events import StreamEvent, StreamEventType, iter_queue
from agentcanvas.core.layout import LayoutEngine
from agentcanvas.core.layout_store import LocalLayoutStore, RemoteLayoutStore
from agentcanvas.core.nodes import TaskStatus
from agentcanvas.core.scene import SceneModel
from agentcanvas.core.settings import SettingsManager, get_settings_manager
from agentcanvas.core.viewport import Viewport
from agentcanvas.ui.animation import AnimationClock
from agentcanvas.ui.canvas_view import CanvasRenderer, CanvasView
from agentcanvas.ui.interaction import InteractionController
from agentcanvas.ui.reconciler import EventReconciler, StreamSupervisor
from agentcanvas.ui.theme import NOTIFICATION_COLORS, CanvasColors

logger = logging.getLogger(__name__)


class CanvasApp:
    """
    Main AgentCanvas application controller.

    Args:
        page: Flet page to render into.
        settings: Settings source (defaults to the global SettingsManager).
        workspace_id: Workspace to open (defaults to settings / environment).
        client: Pre-built ApiClient (tests).
    """

    def __init__(
        self,
        page: ft.Page,
        settings: Optional[SettingsManager] = None,
        workspace_id: Optional[str] = None,
        client: Optional[ApiClient] = None,
    ):
        self.page = page
        self.settings = settings or get_settings_manager()
        self.workspace_id = workspace_id or self.settings.get_workspace_id()

        # Shared state
        self.scene = SceneModel(self.workspace_id)
        self.viewport = Viewport()
        self.layout_engine = LayoutEngine()

        # Outbound
        self.client = client or ApiClient(
            self.settings.get_base_url(),
            timeout=self.settings.get_request_timeout(),
        )
        if self.settings.get_preference("layout_store", "remote") == "local":
            self.layout_store = LocalLayoutStore()
        else:
            self.layout_store = RemoteLayoutStore(self.client)
        self.dispatcher = RequestDispatcher(
            self.client,
            self.workspace_id,
            layout_provider=self.current_layout,
            layout_store=self.layout_store,
            notifier=self.notify,
            on_combiner_task=self._on_combiner_task,
            refresh=self.refresh,
        )

        # Interaction
        self.controller = InteractionController(
            self.scene,
            self.viewport,
            request_sink=self.dispatcher.submit,
            layout_engine=self.layout_engine,
            on_change=self.request_redraw,
            notifier=self.notify,
            snap_radius=float(self.settings.get("canvas", "snap_radius", 80.0)),
            port_radius=float(self.settings.get("canvas", "port_radius", 14.0)),
        )

        # Inbound
        self.reconciler = EventReconciler(self.scene, notifier=self.notify, on_change=self.request_redraw)
        self.events: asyncio.Queue = asyncio.Queue()
        self.supervisor = StreamSupervisor(
            open_stream=lambda: self.client.open_progress_stream(self.workspace_id),
            sink=self.events.put_nowait,
            fetch_snapshot=self._snapshot_event,
            reconnect_delay=self.settings.get_reconnect_delay(),
        )
        self._consumer: Optional[asyncio.Task] = None

        # Rendering
        self.clock = AnimationClock(
            self.scene,
            fps=int(self.settings.get("canvas", "animation_fps", 30)),
            on_frame=self._on_frame,
        )
        self.renderer = CanvasRenderer(self.scene, self.viewport, self.controller, self.clock)
        self.view = CanvasView(self.controller, self.renderer, self.layout_engine)
        self._dirty = True
        self._closed = False

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def _setup_page(self) -> None:
        self.page.title = f"AgentCanvas - {self.workspace_id or 'no workspace'}"
        self.page.theme_mode = ft.ThemeMode.DARK
        self.page.padding = 0
        self.page.bgcolor = CanvasColors.BACKGROUND
        self.page.on_keyboard_event = self._on_keyboard_event
        self.page.on_close = self._on_page_close
        self.page.add(self.view.control)

    async def start(self) -> None:
        """Build the page, load the workspace and start the live loops."""
        self._setup_page()

        if not self.workspace_id:
            logger.error("No workspace configured")
            self.notify("No workspace configured. Set AGENTCANVAS_WORKSPACE_ID.", "error")
            self.view.redraw()
            return

        await self.load_workspace()

        self._consumer = asyncio.get_running_loop().create_task(self._consume_events())
        self.supervisor.start()
        self.clock.start()
        logger.info(f"AgentCanvas started for workspace {self.workspace_id}")

    async def shutdown(self) -> None:
        """Stop loops, flush pending requests and close the HTTP client."""
        if self._closed:
            return
        self._closed = True
        logger.info("Shutting down AgentCanvas")

        await self.supervisor.stop()
        await self.clock.stop()
        self.events.put_nowait(None)
        if self._consumer is not None:
            await self._consumer
            self._consumer = None
        await self.dispatcher.drain()
        await self.client.close()

    async def _on_page_close(self, e) -> None:
        await self.shutdown()

    # ========================================================================
    # WORKSPACE LOADING
    # ========================================================================

    async def load_workspace(self) -> bool:
        """
        Fetch the workspace, apply the saved layout and fit it in view.

        Returns:
            False if the server could not be reached (already notified).
        """
        try:
            snapshot = await self.client.fetch_workspace(self.workspace_id)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to load workspace {self.workspace_id}: {e}")
            self.notify(f"Could not load workspace: {e}", "error")
            self.view.redraw()
            return False

        self.reconciler.apply(self._initial_event(snapshot))
        self.layout_engine.place_agents(self.scene, self.viewport)

        layout = await self._load_layout(snapshot)
        if layout:
            self.scene.apply_layout(layout)
        self.layout_engine.place_unpositioned_tasks(self.scene)

        bounds = self.scene.bounds()
        if bounds is not None:
            self.viewport.fit_to_bounds(*bounds)

        try:
            self.controller.available_agents = await self.client.list_agents()
        except httpx.HTTPError as e:
            logger.warning(f"Failed to list agents: {e}")

        self.request_redraw()
        return True

    async def _load_layout(self, snapshot: WorkspaceSnapshot) -> Optional[Dict[str, Any]]:
        if isinstance(self.layout_store, RemoteLayoutStore):
            return snapshot.layout
        return await self.layout_store.load(self.workspace_id)

    @staticmethod
    def _initial_event(snapshot: WorkspaceSnapshot) -> StreamEvent:
        return StreamEvent(StreamEventType.INITIAL, snapshot.to_event_data())

    async def _snapshot_event(self) -> Optional[StreamEvent]:
        snapshot = await self.client.fetch_workspace(self.workspace_id)
        return self._initial_event(snapshot)

    async def refresh(self) -> None:
        """Re-fetch the workspace and merge it as a snapshot."""
        snapshot = await self.client.fetch_workspace(self.workspace_id)
        self.reconciler.apply(self._initial_event(snapshot))

    def current_layout(self) -> Dict[str, Any]:
        return self.scene.to_layout(self.viewport.scale, self.viewport.offset_x, self.viewport.offset_y)

    # ========================================================================
    # EVENTS
    # ========================================================================

    async def _consume_events(self) -> None:
        async for event in iter_queue(self.events):
            self.handle_event(event)

    def handle_event(self, event: StreamEvent) -> None:
        is_new_task = (
            event.type == StreamEventType.TASK_CREATED.value
            and self.scene.get_task(event.task_id) is None
        )
        try:
            self.reconciler.apply(event)
        except Exception as e:
            logger.error(f"Failed to apply {event.type}: {e}", exc_info=True)
            return

        if is_new_task:
            task = self.scene.get_task(event.task_id)
            if task is not None and task.from_agent and task.is_assigned:
                self.clock.burst(task.from_agent, task.to)

    def _on_combiner_task(self, combiner_id: str, task_id: str) -> None:
        combiner = self.scene.get_combiner(combiner_id)
        if combiner is None:
            logger.warning(f"Combiner {combiner_id} disappeared before its task {task_id} was created")
            return
        combiner.task_id = task_id
        self.scene.touch()
        self.dispatcher.submit(MutationRequest(op=MutationOp.SAVE_LAYOUT))

    def _on_keyboard_event(self, e: ft.KeyboardEvent):
        if self.view.handle_key(e):
            self.request_redraw()

    # ========================================================================
    # RENDERING & NOTIFICATIONS
    # ========================================================================

    def request_redraw(self) -> None:
        self._dirty = True

    def _animating(self) -> bool:
        if self.clock.particles or self.clock.chain_particles:
            return True
        if any(agent.status == "active" for agent in self.scene.agents()):
            return True
        return any(task.status == TaskStatus.IN_PROGRESS for task in self.scene.tasks())

    def _on_frame(self) -> None:
        if self._dirty or self._animating():
            self._dirty = False
            self.view.redraw()

    def notify(self, message: str, level: str = "info") -> None:
        """Show a SnackBar notification."""
        log = logger.warning if level in ("error", "warning") else logger.info
        log(f"[{level}] {message}")

        snack = ft.SnackBar(
            content=ft.Text(message, color=CanvasColors.TEXT_STRONG),
            bgcolor=NOTIFICATION_COLORS.get(level, CanvasColors.INFO),
            duration=4000 if level == "error" else 2500,
        )
        self.page.overlay[:] = [
            c for c in self.page.overlay if not isinstance(c, ft.SnackBar) or c.open
        ]
        self.page.overlay.append(snack)
        snack.open = True
        self.page.update()


async def main(page: ft.Page):
    """Main entry point for the Flet application."""
    app = CanvasApp(page)
    await app.start()
