# rediver/pipelines/layout.py
"""
Auto Layout
-----------
Column-per-level placement for steps that have no stored canvas position.
A step's level is the length of the longest dependency path from a root;
steps that cannot be reached from a root (cycles) sit in level 0.
"""

from collections import deque
from typing import Dict, List

from rediver.models.pipeline import Step, UIPosition

NODE_WIDTH = 200
NODE_HEIGHT = 80
HORIZONTAL_GAP = 80
VERTICAL_GAP = 40
START_X = 50
START_Y = 100


def compute_levels(steps: List[Step]) -> Dict[str, int]:
    """step_key -> level."""
    levels: Dict[str, int] = {}
    queue = deque()
    for step in steps:
        if not step.depends_on:
            levels[step.step_key] = 0
            queue.append((step.step_key, 0))

    # A simple path has at most len(steps) - 1 edges; deeper levels mean a cycle.
    max_level = len(steps) - 1
    while queue:
        key, level = queue.popleft()
        if level >= max_level:
            continue
        for step in steps:
            if key in step.depends_on:
                current = levels.get(step.step_key)
                if current is None or level + 1 > current:
                    levels[step.step_key] = level + 1
                    queue.append((step.step_key, level + 1))

    for step in steps:
        levels.setdefault(step.step_key, 0)
    return levels


def calculate_auto_layout(steps: List[Step]) -> Dict[str, UIPosition]:
    """step id -> position."""
    positions: Dict[str, UIPosition] = {}
    if not steps:
        return positions

    levels = compute_levels(steps)
    groups: Dict[int, List[Step]] = {}
    for step in steps:
        groups.setdefault(levels[step.step_key], []).append(step)

    for level, members in groups.items():
        x = START_X + 100 + level * (NODE_WIDTH + HORIZONTAL_GAP)
        total_height = len(members) * NODE_HEIGHT + (len(members) - 1) * VERTICAL_GAP
        first_y = START_Y - total_height / 2 + NODE_HEIGHT / 2
        for index, step in enumerate(members):
            y = first_y + index * (NODE_HEIGHT + VERTICAL_GAP)
            positions[step.id] = UIPosition(x=float(x), y=float(max(START_Y, y)))
    return positions


def default_start_position() -> UIPosition:
    return UIPosition(x=float(START_X), y=float(START_Y + 50))


def default_end_position(steps: List[Step]) -> UIPosition:
    auto = calculate_auto_layout(steps)
    xs = []
    for step in steps:
        if step.ui_position is not None:
            xs.append(step.ui_position.x)
        else:
            xs.append(auto[step.id].x if step.id in auto else 200.0)
    max_x = max(xs) if xs else START_X + 100
    return UIPosition(x=float(max_x + NODE_WIDTH + HORIZONTAL_GAP), y=float(START_Y + 50))


def fill_missing_positions(steps: List[Step]) -> int:
    """Give auto-layout positions to steps without one. Returns how many were placed."""
    missing = [s for s in steps if s.ui_position is None]
    if not missing:
        return 0
    auto = calculate_auto_layout(steps)
    for step in missing:
        step.ui_position = auto.get(step.id, UIPosition(x=200.0, y=float(START_Y)))
    return len(missing)
