"""
AgentCanvas - interactive node-graph canvas for multi-agent workspaces.

Subpackages:
- core: viewport, scene graph, layout, settings (no UI dependencies)
- api: HTTP client, wire models, progress stream
- ui: interaction state machine, event reconciliation, Flet host
"""

__version__ = "0.3.0"
