"""Exact hypervolume indicator for maximization problems."""

from typing import List, Optional, Sequence, Tuple

Point = Tuple[float, ...]


def hypervolume(
    points: Sequence[Sequence[float]],
    reference: Optional[Sequence[float]] = None,
) -> float:
    """Volume of objective space dominated by points and bounded by reference.

    All objectives are maximized. The reference defaults to the origin;
    points not strictly better than the reference on every objective
    contribute nothing.
    """
    if not points:
        return 0.0
    dims = len(points[0])
    ref = tuple(reference) if reference is not None else tuple(0.0 for _ in range(dims))
    if len(ref) != dims:
        raise ValueError(f"Reference point has {len(ref)} dims, points have {dims}")

    valid = [tuple(p) for p in points if all(x > r for x, r in zip(p, ref))]
    if not valid:
        return 0.0
    return _hypervolume(sorted(set(valid)), ref)


def _hypervolume(points: List[Point], ref: Point) -> float:
    dims = len(ref)
    if dims == 1:
        return max(p[0] for p in points) - ref[0]
    if dims == 2:
        return _sweep_2d(points, ref)

    # slice along the last objective and recurse on the remaining ones
    levels = sorted({p[-1] for p in points})
    volume = 0.0
    lower = ref[-1]
    for level in levels:
        slab = [p[:-1] for p in points if p[-1] >= level]
        volume += (level - lower) * _hypervolume(sorted(set(slab)), ref[:-1])
        lower = level
    return volume


def _sweep_2d(points: List[Point], ref: Point) -> float:
    volume = 0.0
    best_y = ref[1]
    for x, y in sorted(points, key=lambda p: (-p[0], -p[1])):
        if y > best_y:
            volume += (x - ref[0]) * (y - best_y)
            best_y = y
    return volume


def contributions(
    points: Sequence[Sequence[float]],
    reference: Optional[Sequence[float]] = None,
) -> List[float]:
    """Exclusive hypervolume contribution of each point."""
    total = hypervolume(points, reference)
    result = []
    for i in range(len(points)):
        rest = [p for j, p in enumerate(points) if j != i]
        result.append(max(0.0, total - hypervolume(rest, reference)))
    return result
