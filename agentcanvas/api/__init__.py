"""
Orchestration server API for AgentCanvas.

Exports:
- ApiClient: httpx-based client for the orchestration REST endpoints
- RequestDispatcher: fire-and-forget executor for mutation intents
- ProgressStream: one-shot server-sent event stream of workspace events
"""

from agentcanvas.api.client import ApiClient, RequestDispatcher
from agentcanvas.api.stream import ProgressStream, StreamClosedError

__all__ = [
    "ApiClient",
    "RequestDispatcher",
    "ProgressStream",
    "StreamClosedError",
]
