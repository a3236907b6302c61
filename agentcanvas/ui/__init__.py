"""
UI layer for AgentCanvas.

The interaction and reconciliation modules are plain Python and can be
imported without Flet; canvas_view and app host them inside a Flet page.
"""
