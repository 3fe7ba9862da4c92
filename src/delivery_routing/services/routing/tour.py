"""Tour construction and 2-opt refinement over matrix positions.

A tour is a list of positions into the location list, position 0 being the
depot. Tours are open paths: the last stop does not return to the depot.
Distances may be directional, so every candidate is measured in full.
"""

from __future__ import annotations

import time
from typing import Callable, Sequence

DistanceFn = Callable[[int, int], float]

IMPROVEMENT_EPSILON = 1e-9
DEFAULT_MAX_ITERATIONS = 100


def tour_length(tour: Sequence[int], distance: DistanceFn) -> float:
    return sum(distance(tour[k], tour[k + 1]) for k in range(len(tour) - 1))


def nearest_neighbor_tour(size: int, distance: DistanceFn) -> list[int]:
    """Greedy tour over positions ``0..size-1`` starting at the depot.

    Ties go to the lower position, i.e. the stop listed first by the caller.
    """
    if size <= 0:
        return []
    tour = [0]
    unvisited = list(range(1, size))
    current = 0
    while unvisited:
        best = unvisited[0]
        best_distance = distance(current, best)
        for candidate in unvisited[1:]:
            candidate_distance = distance(current, candidate)
            if candidate_distance < best_distance:
                best, best_distance = candidate, candidate_distance
        tour.append(best)
        unvisited.remove(best)
        current = best
    return tour


def two_opt(
    tour: Sequence[int],
    distance: DistanceFn,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    deadline: float | None = None,
) -> list[int]:
    """Improve ``tour`` by segment reversals, keeping the depot at position 0.

    Each strictly shorter reversal is applied and the scan restarts from the
    beginning. The loop ends on a full pass without improvement, after
    ``max_iterations`` restarts, or once ``deadline`` (``time.monotonic()``)
    has passed.
    """
    best = list(tour)
    best_length = tour_length(best, distance)
    n = len(best)
    iterations = 0
    improved = True
    while improved and iterations < max_iterations:
        if deadline is not None and time.monotonic() >= deadline:
            break
        improved = False
        for i in range(1, n - 1):
            for j in range(i + 1, n):
                candidate = best[:i] + best[i : j + 1][::-1] + best[j + 1 :]
                candidate_length = tour_length(candidate, distance)
                if candidate_length < best_length - IMPROVEMENT_EPSILON:
                    best, best_length = candidate, candidate_length
                    improved = True
                    break
            if improved:
                break
        if improved:
            iterations += 1
    return best
