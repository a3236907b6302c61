"""
Layout algorithms for AgentCanvas.

- Dependency leveling of tasks (input_task_ids) and the layered
  auto-layout built on it.
- Deterministic fallback placement for nodes that have no position yet
  (agents on a row, task cards near the agents they belong to).
"""

import logging
from typing import Dict, Iterable, List, Tuple

from agentcanvas.core.nodes import AGENT_PALETTE, UNASSIGNED, Task
from agentcanvas.core.scene import SceneModel
from agentcanvas.core.viewport import Viewport

logger = logging.getLogger(__name__)


# Traversal colors
_WHITE = 0
_GRAY = 1
_BLACK = 2

SYSTEM_SENDERS = ("user", "system")


class LayoutEngine:
    """
    Hierarchical top-to-bottom layout over task dependencies.

    Attributes:
        node_spacing: Horizontal distance between tasks in a layer.
        level_spacing: Vertical distance between layers.
        start_y: World y of layer 0.
    """

    def __init__(
        self,
        node_spacing: float = 220.0,
        level_spacing: float = 250.0,
        start_y: float = 150.0,
    ):
        self.node_spacing = node_spacing
        self.level_spacing = level_spacing
        self.start_y = start_y

    # ========================================================================
    # LEVELING
    # ========================================================================

    def compute_levels(self, tasks: Iterable[Task]) -> Dict[str, int]:
        """
        Assign each task its dependency depth.

        level = 0 without resolvable inputs, else 1 + max(level(input)).
        Uses an iterative three-color DFS: a dependency that is still being
        computed (gray) closes a cycle and is ignored for the node that
        reached it, so cycles terminate with finite levels. Ids that are
        not in `tasks` are ignored.

        Args:
            tasks: Tasks to level.

        Returns:
            Dict of task id -> level.
        """
        by_id: Dict[str, Task] = {}
        for task in tasks:
            by_id.setdefault(task.id, task)

        color: Dict[str, int] = {}
        levels: Dict[str, int] = {}

        for root_id in by_id:
            if color.get(root_id, _WHITE) != _WHITE:
                continue

            color[root_id] = _GRAY
            stack = [(root_id, iter(by_id[root_id].input_task_ids or []))]

            while stack:
                node_id, pending = stack[-1]
                descended = False

                for dep_id in pending:
                    if dep_id not in by_id:
                        continue
                    if color.get(dep_id, _WHITE) == _WHITE:
                        color[dep_id] = _GRAY
                        stack.append((dep_id, iter(by_id[dep_id].input_task_ids or [])))
                        descended = True
                        break
                    if color[dep_id] == _GRAY:
                        logger.debug(f"Dependency cycle: {node_id} -> {dep_id}")

                if descended:
                    continue

                stack.pop()
                resolved = [
                    levels[dep_id]
                    for dep_id in by_id[node_id].input_task_ids or []
                    if color.get(dep_id) == _BLACK
                ]
                levels[node_id] = 1 + max(resolved) if resolved else 0
                color[node_id] = _BLACK

        return levels

    def group_by_level(self, tasks: Iterable[Task]) -> List[List[Task]]:
        """Tasks grouped into layers 0..max_level, preserving input order."""
        task_list = list(tasks)
        levels = self.compute_levels(task_list)
        if not levels:
            return []
        layers: List[List[Task]] = [[] for _ in range(max(levels.values()) + 1)]
        seen = set()
        for task in task_list:
            if task.id in seen:
                continue
            seen.add(task.id)
            layers[levels[task.id]].append(task)
        return layers

    # ========================================================================
    # AUTO-LAYOUT
    # ========================================================================

    def auto_layout(self, scene: SceneModel, viewport: Viewport) -> Dict[str, Tuple[float, float]]:
        """
        Reposition every task by dependency level.

        Each layer is centered on the world x at the middle of the view;
        layer y = start_y + level * level_spacing.

        Returns:
            Dict of task id -> new (x, y).
        """
        layers = self.group_by_level(scene.tasks())
        center_x = viewport.center_world_x()
        placed: Dict[str, Tuple[float, float]] = {}

        for level, layer in enumerate(layers):
            y = self.start_y + level * self.level_spacing
            row_width = (len(layer) - 1) * self.node_spacing
            for index, task in enumerate(layer):
                x = center_x - row_width / 2 + index * self.node_spacing
                scene.move_node(task.id, x, y)
                placed[task.id] = (x, y)

        logger.info(f"Auto-layout placed {len(placed)} tasks in {len(layers)} levels")
        return placed

    # ========================================================================
    # FALLBACK PLACEMENT
    # ========================================================================

    def place_agents(self, scene: SceneModel, viewport: Viewport) -> int:
        """
        Lay unpositioned agents out on a horizontal row and give them
        palette colors.

        Returns:
            Number of agents placed.
        """
        agents = scene.agents()
        count = len(agents)
        spacing = min(150.0, viewport.width * 0.8 / max(count - 1, 1))
        center_y = viewport.height * 0.6
        start_x = (viewport.width - spacing * (count - 1)) / 2

        placed = 0
        for index, agent in enumerate(agents):
            agent.color = AGENT_PALETTE[index % len(AGENT_PALETTE)]
            if agent.positioned:
                continue
            scene.move_node(agent.id, start_x + index * spacing, center_y)
            placed += 1
        return placed

    def place_unpositioned_tasks(self, scene: SceneModel) -> int:
        """
        Give every task without a position a deterministic default.

        - unassigned: a 3x3 grid near the top-left
        - created by user/system (or by an unknown agent): beside its target agent
        - agent-to-agent: between the two agents, raised above them

        Tasks whose target agent is missing or unplaced are left alone.

        Returns:
            Number of tasks placed.
        """
        placed = 0
        for index, task in enumerate(scene.tasks()):
            if task.positioned:
                continue

            col = index % 3
            row = (index // 3) % 3

            if not task.to or task.to == UNASSIGNED:
                scene.move_node(task.id, 100.0 + col * 180, 100.0 + row * 80)
                placed += 1
                continue

            target = scene.get_agent(task.to)
            if target is None or not target.positioned:
                continue

            source = scene.get_agent(task.from_agent)
            if source is None or not source.positioned or task.from_agent in SYSTEM_SENDERS:
                scene.move_node(task.id, target.x + 100 + col * 50, target.y - 100 + row * 70)
            else:
                mid_x = (source.x + target.x) / 2
                mid_y = (source.y + target.y) / 2
                scene.move_node(task.id, mid_x, mid_y + (col - 1) * 70 - 80)
            placed += 1

        return placed
