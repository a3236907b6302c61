"""
Per-frame animation state for the canvas.

AnimationClock advances purely visual state once per frame: agent pulse
phase, in-progress task progress bars, assignment particles and chain
particles flowing along task dependencies. Nothing here is persisted or
sent to the server.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Callable, List, Optional

from agentcanvas.core.nodes import Task, TaskStatus
from agentcanvas.core.scene import SceneModel

logger = logging.getLogger(__name__)


PULSE_STEP = 0.05
PROGRESS_STEP = 0.5
PROGRESS_MAX = 100.0
CHAIN_SPAWN_CHANCE = 0.1
ASSIGNMENT_PARTICLES = 20


@dataclass
class Particle:
    """A dot travelling from (start_x, start_y) to (target_x, target_y)."""
    start_x: float
    start_y: float
    target_x: float
    target_y: float
    speed: float
    color: str
    size: float = 3.0
    progress: float = 0.0

    @property
    def x(self) -> float:
        return self.start_x + (self.target_x - self.start_x) * self.progress

    @property
    def y(self) -> float:
        return self.start_y + (self.target_y - self.start_y) * self.progress

    @property
    def alpha(self) -> float:
        return max(0.0, 1.0 - self.progress)

    def advance(self) -> bool:
        """Move one frame; False once the particle has arrived."""
        self.progress += self.speed
        return self.progress < 1.0


@dataclass
class Chain:
    """Dependency link between an input task and the task consuming it."""
    source: Task
    target: Task

    @property
    def active(self) -> bool:
        return self.target.status in (TaskStatus.IN_PROGRESS, TaskStatus.PENDING)


class AnimationClock:
    """
    Drives animation at a fixed frame rate.

    Args:
        scene: Scene whose nodes are animated.
        fps: Frames per second for `run()`.
        rng: Random source (seeded in tests).
        on_frame: Called after every tick (usually a redraw).
    """

    def __init__(
        self,
        scene: SceneModel,
        fps: int = 30,
        rng: Optional[random.Random] = None,
        on_frame: Optional[Callable[[], None]] = None,
    ):
        self.scene = scene
        self.fps = max(1, int(fps))
        self.rng = rng or random.Random()
        self.on_frame = on_frame
        self.particles: List[Particle] = []
        self.chain_particles: List[Particle] = []
        self.chains: List[Chain] = []
        self.paused = False
        self._task: Optional[asyncio.Task] = None

    def tick(self) -> None:
        """Advance every animated value by one frame."""
        if self.paused:
            return

        for task in self.scene.tasks():
            if task.status == TaskStatus.IN_PROGRESS and task.progress < PROGRESS_MAX:
                task.progress = min(PROGRESS_MAX, task.progress + PROGRESS_STEP)

        self.particles = [p for p in self.particles if p.advance()]
        self.chain_particles = [p for p in self.chain_particles if p.advance()]

        self.update_chains()
        for chain in self.chains:
            if chain.active and self.rng.random() < CHAIN_SPAWN_CHANCE:
                self._spawn_chain_particle(chain)

        for agent in self.scene.agents():
            agent.pulse_phase += PULSE_STEP

    def update_chains(self) -> List[Chain]:
        """Rebuild the chain list from every task's input_task_ids."""
        chains = []
        for task in self.scene.tasks():
            for input_id in task.input_task_ids or []:
                source = self.scene.get_task(input_id)
                if source is not None:
                    chains.append(Chain(source, task))
        self.chains = chains
        return chains

    def _spawn_chain_particle(self, chain: Chain) -> None:
        if not (chain.source.positioned and chain.target.positioned):
            return
        color = "#3b82f6" if chain.target.status == TaskStatus.IN_PROGRESS else "#6b7280"
        self.chain_particles.append(Particle(
            start_x=chain.source.x,
            start_y=chain.source.y,
            target_x=chain.target.x,
            target_y=chain.target.y,
            speed=0.01 + self.rng.random() * 0.01,
            color=color,
            size=4.0,
        ))

    def burst(self, from_node_id: str, to_node_id: str) -> int:
        """
        Emit assignment particles between two nodes.

        Returns:
            Number of particles created (0 if either node is not placed).
        """
        source = self.scene.get(from_node_id)
        target = self.scene.get(to_node_id)
        if source is None or target is None or not (source.positioned and target.positioned):
            return 0
        color = getattr(source, "color", "#8b5cf6")
        for _ in range(ASSIGNMENT_PARTICLES):
            self.particles.append(Particle(
                start_x=source.x,
                start_y=source.y,
                target_x=target.x,
                target_y=target.y,
                speed=0.01 + self.rng.random() * 0.02,
                color=color,
                size=2.0 + self.rng.random() * 3.0,
            ))
        return ASSIGNMENT_PARTICLES

    # ========================================================================
    # LOOP
    # ========================================================================

    async def run(self) -> None:
        interval = 1.0 / self.fps
        while True:
            self.tick()
            if self.on_frame is not None:
                self.on_frame()
            await asyncio.sleep(interval)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())
            logger.debug(f"Animation clock started at {self.fps} fps")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug("Animation clock stopped")
