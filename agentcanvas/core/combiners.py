"""
Combiner input resolution.

A combiner's inputs are whatever is wired into its input ports:
- a task source contributes the task itself
- an agent source contributes that agent's most relevant recent task

Duplicates and the combiner's own backing task are dropped.
"""

from typing import List, Optional, Tuple

from agentcanvas.core.nodes import Combiner, NodeKind, Task, TaskStatus
from agentcanvas.core.scene import SceneModel, input_port_index


def latest_task_for_agent(scene: SceneModel, agent_name: str) -> Optional[Task]:
    """
    Pick the task that best represents an agent's latest output.

    Preference: completed with a result, then completed, then running or
    assigned, then anything; newest first within each group.
    """
    candidates = [
        t for t in scene.tasks()
        if t.to == agent_name or t.from_agent == agent_name
    ]
    if not candidates:
        return None

    def newest(tasks: List[Task]) -> Optional[Task]:
        if not tasks:
            return None
        return max(tasks, key=lambda t: t.recency())

    for group in (
        [t for t in candidates if t.status == TaskStatus.COMPLETED and t.result],
        [t for t in candidates if t.status == TaskStatus.COMPLETED],
        [t for t in candidates if t.status in (TaskStatus.IN_PROGRESS, TaskStatus.ASSIGNED)],
        candidates,
    ):
        task = newest(group)
        if task is not None:
            return task
    return None


def resolve_combiner_inputs(scene: SceneModel, combiner: Combiner) -> Tuple[List[Task], List[str]]:
    """
    Resolve the tasks feeding a combiner.

    Returns:
        (tasks, missing_agents): input tasks in port order, and names of
        connected agents that have no task to contribute.
    """
    tasks: List[Task] = []
    missing: List[str] = []
    seen = set()

    incoming = sorted(scene.connections_into(combiner.id), key=lambda c: input_port_index(c.to_port))
    for conn in incoming:
        source = scene.get(conn.from_node)
        if source is None:
            continue
        if source.kind == NodeKind.TASK:
            task = source
        elif source.kind == NodeKind.AGENT:
            task = latest_task_for_agent(scene, source.id)
            if task is None:
                missing.append(source.id)
                continue
        else:
            continue

        if task.id in seen or task.id == combiner.task_id:
            continue
        seen.add(task.id)
        tasks.append(task)

    return tasks, missing


def build_combination_instruction(tasks: List[Task]) -> str:
    """Instruction text listing each input's result (or its description)."""
    if not tasks:
        return ""
    lines = []
    for task in tasks:
        description = task.description or "task"
        if task.result:
            lines.append(f'Task {task.id}: "{description}" -> Result: {task.result}')
        else:
            lines.append(f'Task {task.id}: "{description}" (no result yet, use the prompt/description)')
    return "Combine the following inputs (use description when result is missing):\n- " + "\n- ".join(lines)


def result_preview(scene: SceneModel, combiner: Combiner) -> str:
    """Local preview of what the combiner would produce from finished inputs."""
    results = []
    for conn in scene.connections_into(combiner.id):
        task = scene.get_task(conn.from_node)
        if task is not None and task.result:
            results.append(str(task.result))
    if not results:
        return ""
    if combiner.result_combination_mode == "append":
        return "\n---\n".join(results)
    return "\n".join(f"• Input {i + 1}: {text}" for i, text in enumerate(results))
