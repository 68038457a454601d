# dag.py
from __future__ import annotations

from typing import Dict, List, Tuple

from .errors import CircularDependency, DuplicateStepId, EmptyPipeline, InvalidDependency
from .model import ExecutionPlan, Pipeline


def build_dag(pipeline: Pipeline) -> Tuple[Dict[int, List[int]], List[int]]:
    """
    Build the dependency graph over step indices.

    Returns:
      dependents: index -> indices of steps that list it in depends_on
                  (one entry per listing, so repeated ids count twice)
      indeg:      per-step number of declared dependencies

    Raises:
      EmptyPipeline, DuplicateStepId, InvalidDependency
    """
    steps = pipeline.steps
    if not steps:
        raise EmptyPipeline(pipeline.name)

    index_of: Dict[str, int] = {}
    for i, step in enumerate(steps):
        if step.id in index_of:
            raise DuplicateStepId(step.id)
        index_of[step.id] = i

    dependents: Dict[int, List[int]] = {i: [] for i in range(len(steps))}
    indeg: List[int] = [0] * len(steps)

    for i, step in enumerate(steps):
        for dep in step.depends_on:
            if dep not in index_of:
                raise InvalidDependency(step.id, dep, known=index_of.keys())
            # Edge dep -> step (dep must run before step)
            dependents[index_of[dep]].append(i)
            indeg[i] += 1

    return dependents, indeg


def topo_levels(
    dependents: Dict[int, List[int]],
    indeg: List[int],
    ids: List[str],
) -> List[Tuple[int, ...]]:
    """
    Convert the graph into levels. Each level holds every not-yet-processed
    step whose dependencies are all processed, in declaration order.
    """
    indeg = list(indeg)  # copy (we mutate it)
    processed = [False] * len(indeg)
    remaining = len(indeg)
    levels: List[Tuple[int, ...]] = []

    while remaining:
        level = tuple(i for i, d in enumerate(indeg) if d == 0 and not processed[i])
        if not level:
            raise CircularDependency([ids[i] for i, done in enumerate(processed) if not done])

        for i in level:
            processed[i] = True
            remaining -= 1
            for child in dependents[i]:
                indeg[child] -= 1

        levels.append(level)

    return levels


def plan(pipeline: Pipeline) -> ExecutionPlan:
    """
    Kahn's algorithm, grouped into levels.

    Deterministic for a fixed declaration order. Either the whole plan is
    returned or a PlanningError is raised; no partial plan is observable.
    """
    dependents, indeg = build_dag(pipeline)
    levels = topo_levels(dependents, indeg, pipeline.step_ids())
    return ExecutionPlan(levels=tuple(levels))
