"""
HTTP client for the orchestration server.

ApiClient maps each canvas operation onto its REST endpoint using a
shared httpx.AsyncClient. RequestDispatcher sits between the canvas and
the client: it receives MutationRequest intents synchronously, runs them
as background tasks, and reports failures through the notifier. Failed
requests are never retried.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
from urllib.parse import quote

import httpx

from agentcanvas.api.models import (
    LayoutSnapshot,
    MutationOp,
    MutationRequest,
    WorkspaceSnapshot,
)
from agentcanvas.api.stream import ProgressStream

logger = logging.getLogger(__name__)


Notifier = Callable[[str, str], None]


class ApiClient:
    """
    Async client for the orchestration REST API.

    Every method raises httpx.HTTPError subclasses on transport failure
    or non-2xx status.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        response = await self._client.request(method, path, **kwargs)
        response.raise_for_status()
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    # ========================================================================
    # WORKSPACE
    # ========================================================================

    async def fetch_workspace(self, workspace_id: str) -> WorkspaceSnapshot:
        """GET /api/studios/{id}: agents, tasks, stats, progress and saved layout."""
        data = await self._request("GET", f"/api/studios/{quote(workspace_id, safe='')}")
        if isinstance(data, dict):
            data = data.get("studio") or data.get("workspace") or data
        return WorkspaceSnapshot.model_validate(data or {})

    async def list_agents(self) -> List[str]:
        """GET /api/agents: names of every agent known to the server."""
        data = await self._request("GET", "/api/agents")
        agents = data.get("agents", []) if isinstance(data, dict) else (data or [])
        names = []
        for agent in agents:
            name = agent.get("name") if isinstance(agent, dict) else agent
            if name:
                names.append(str(name))
        return names

    async def add_agent(self, workspace_id: str, agent_name: str) -> Any:
        return await self._request(
            "POST",
            f"/api/studios/{quote(workspace_id, safe='')}/agents",
            json={"agent_name": agent_name},
        )

    async def remove_agent(self, workspace_id: str, agent_name: str) -> Any:
        return await self._request(
            "DELETE",
            f"/api/studios/{quote(workspace_id, safe='')}/agents/{quote(agent_name, safe='')}",
        )

    async def save_layout(self, layout: LayoutSnapshot) -> Any:
        return await self._request(
            "PUT", "/api/orchestration/workspace/layout", json=layout.model_dump()
        )

    def open_progress_stream(self, workspace_id: str) -> ProgressStream:
        """Create (but do not yet open) a progress stream for a workspace."""
        return ProgressStream(self._client, workspace_id)

    # ========================================================================
    # TASKS
    # ========================================================================

    async def create_task(
        self,
        workspace_id: str,
        description: str,
        to: str = "unassigned",
        from_agent: str = "user",
        priority: Any = 0,
        **extra: Any,
    ) -> Dict[str, Any]:
        """POST /api/orchestration/tasks. Returns the server response (with "task")."""
        body = {
            "studio_id": workspace_id,
            "from": from_agent,
            "to": to,
            "description": description,
            "priority": priority,
        }
        body.update(extra)
        return await self._request("POST", "/api/orchestration/tasks", json=body) or {}

    async def update_task(self, task_id: str, fields: Dict[str, Any]) -> Any:
        body = {"task_id": task_id}
        body.update(fields)
        return await self._request("PUT", "/api/orchestration/tasks", json=body)

    async def reset_task(self, task_id: str) -> Any:
        """Put a finished task back to pending and clear its result."""
        return await self._request(
            "PUT",
            f"/api/orchestration/tasks/{quote(task_id, safe='')}",
            json={"status": "pending", "result": None},
        )

    async def delete_task(self, task_id: str) -> Any:
        return await self._request("DELETE", "/api/orchestration/tasks", params={"id": task_id})

    async def execute_task(self, task_id: str) -> Any:
        return await self._request(
            "POST", "/api/orchestration/tasks/execute", json={"task_id": task_id}
        )


# ============================================================================
# REQUEST DISPATCH
# ============================================================================

class RequestDispatcher:
    """
    Executes MutationRequest intents against the API without blocking
    the caller.

    Args:
        client: ApiClient to send requests with.
        workspace_id: Workspace the canvas is showing.
        layout_provider: Returns the current layout dict (for connection
            changes and explicit saves).
        layout_store: Object with `async save(LayoutSnapshot)`; defaults to
            sending the layout to the server through `client`.
        notifier: `notifier(message, level)` for user-visible feedback.
        on_combiner_task: Called with (combiner_id, task_id) once a
            combiner's backing task has been created.
        refresh: Coroutine function re-fetching the workspace after
            operations that produce no stream event.
    """

    REFRESH_OPS = frozenset({
        MutationOp.ADD_AGENT.value,
        MutationOp.CREATE_COMBINER_TASK.value,
    })

    def __init__(
        self,
        client: ApiClient,
        workspace_id: str,
        layout_provider: Optional[Callable[[], Dict[str, Any]]] = None,
        layout_store=None,
        notifier: Optional[Notifier] = None,
        on_combiner_task: Optional[Callable[[str, str], None]] = None,
        refresh: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self._client = client
        self._workspace_id = workspace_id
        self._layout_provider = layout_provider
        self._layout_store = layout_store
        self._notifier = notifier
        self._on_combiner_task = on_combiner_task
        self._refresh = refresh
        self._pending: Set[asyncio.Task] = set()

        self._handlers: Dict[str, Callable[[MutationRequest], Awaitable[None]]] = {
            MutationOp.CREATE_TASK.value: self._create_task,
            MutationOp.UPDATE_TASK.value: self._update_task,
            MutationOp.DELETE_TASK.value: self._delete_task,
            MutationOp.EXECUTE_TASK.value: self._execute_task,
            MutationOp.RERUN_TASK.value: self._rerun_task,
            MutationOp.CREATE_CONNECTION.value: self._save_layout,
            MutationOp.DELETE_CONNECTION.value: self._save_layout,
            MutationOp.SAVE_LAYOUT.value: self._save_layout,
            MutationOp.ADD_AGENT.value: self._add_agent,
            MutationOp.REMOVE_AGENT.value: self._remove_agent,
            MutationOp.EXECUTE_COMBINER.value: self._execute_combiner,
            MutationOp.CREATE_COMBINER_TASK.value: self._create_combiner_task,
        }

    @property
    def pending(self) -> int:
        return len(self._pending)

    def _notify(self, message: str, level: str = "info") -> None:
        if self._notifier is not None:
            self._notifier(message, level)

    def submit(self, request: MutationRequest) -> None:
        """
        Schedule a request on the running event loop and return immediately.

        Must be called from inside the loop (Flet handlers are).
        """
        task = asyncio.get_running_loop().create_task(self.dispatch(request))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every in-flight request (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def dispatch(self, request: MutationRequest) -> bool:
        """
        Execute one request.

        Returns:
            True on success, False if the request failed (already notified).
        """
        handler = self._handlers.get(request.op)
        if handler is None:
            logger.error(f"No handler for mutation op: {request.op}")
            return False

        logger.debug(f"Dispatching {request.op} for {request.node_id} ({request.id})")
        try:
            await handler(request)
        except httpx.HTTPError as e:
            logger.warning(f"Request {request.op} for {request.node_id} failed: {e}")
            self._notify(f"{request.op.replace('_', ' ').capitalize()} failed: {e}", "error")
            return False

        if request.op in self.REFRESH_OPS and self._refresh is not None:
            try:
                await self._refresh()
            except httpx.HTTPError as e:
                logger.warning(f"Workspace refresh failed: {e}")
        return True

    # ========================================================================
    # HANDLERS
    # ========================================================================

    async def _create_task(self, request: MutationRequest) -> None:
        params = request.params
        await self._client.create_task(
            self._workspace_id,
            description=params.get("description", ""),
            to=params.get("to") or "unassigned",
            from_agent=params.get("from", "user"),
            priority=params.get("priority", 0),
        )
        self._notify("Task created", "success")

    async def _update_task(self, request: MutationRequest) -> None:
        await self._client.update_task(request.node_id, request.params)

    async def _delete_task(self, request: MutationRequest) -> None:
        await self._client.delete_task(request.node_id)

    async def _execute_task(self, request: MutationRequest) -> None:
        await self._client.execute_task(request.node_id)

    async def _rerun_task(self, request: MutationRequest) -> None:
        await self._client.reset_task(request.node_id)
        await self._client.execute_task(request.node_id)

    async def _save_layout(self, request: MutationRequest) -> None:
        if self._layout_provider is None or not self._workspace_id:
            logger.debug("Layout save skipped: no layout provider or workspace")
            return
        layout = LayoutSnapshot.model_validate(self._layout_provider())
        if self._layout_store is not None:
            await self._layout_store.save(layout)
        else:
            await self._client.save_layout(layout)

    async def _add_agent(self, request: MutationRequest) -> None:
        await self._client.add_agent(self._workspace_id, request.node_id)
        self._notify(f"Agent \"{request.node_id}\" added", "success")

    async def _remove_agent(self, request: MutationRequest) -> None:
        await self._client.remove_agent(self._workspace_id, request.node_id)
        self._notify("Agent removed", "success")

    async def _execute_combiner(self, request: MutationRequest) -> None:
        params = request.params
        task_id = params["task_id"]

        for input_id in params.get("execute_first") or []:
            await self._client.execute_task(input_id)

        await self._client.update_task(task_id, {
            "to": params.get("to", "unassigned"),
            "input_task_ids": params.get("input_task_ids", []),
            "result_combination_mode": params.get("result_combination_mode"),
            "combination_instruction": params.get("combination_instruction", ""),
            "status": "pending",
        })
        await self._client.execute_task(task_id)
        self._notify("Combiner execution started", "success")

    async def _create_combiner_task(self, request: MutationRequest) -> None:
        params = request.params
        result = await self._client.create_task(
            self._workspace_id,
            description=params.get("description", "Combiner operation"),
            to="unassigned",
            from_agent="system",
            priority=3,
            result_combination_mode=params.get("result_combination_mode"),
        )
        task = result.get("task") if isinstance(result, dict) else None
        task_id = (task or {}).get("id") or (result or {}).get("id")
        if not task_id:
            logger.warning(f"Combiner task response had no id: {result}")
            return
        if self._on_combiner_task is not None:
            self._on_combiner_task(request.node_id, task_id)
        logger.info(f"Created task {task_id} for combiner {request.node_id}")
