"""
Association utilities for multi-person tracking.

This module provides the ground-plane distance metric and the two gated
matching strategies between tracks and detections: greedy nearest
neighbour (the default) and the optimal assignment via the Hungarian
algorithm.
"""

import numpy as np
from scipy.optimize import linear_sum_assignment
from typing import Tuple, List


def compute_distance(point_a: np.ndarray, point_b: np.ndarray) -> float:
    """
    Compute Euclidean distance between two ground points.

    Args:
        point_a: First point [x, y, ...]
        point_b: Second point [x, y, ...]

    Returns:
        Distance in the ground plane, ignoring any z component
    """
    delta = np.asarray(point_a, dtype=np.float64)[:2] - \
        np.asarray(point_b, dtype=np.float64)[:2]
    return float(np.hypot(delta[0], delta[1]))


def compute_distance_batch(points_a: np.ndarray, points_b: np.ndarray) -> np.ndarray:
    """
    Compute the ground distance matrix between two sets of points.

    Args:
        points_a: First set of points, shape (N, 2) or (N, 3)
        points_b: Second set of points, shape (M, 2) or (M, 3)

    Returns:
        Distance matrix of shape (N, M)
    """
    points_a = np.asarray(points_a, dtype=np.float64)
    points_b = np.asarray(points_b, dtype=np.float64)
    if len(points_a) == 0 or len(points_b) == 0:
        return np.empty((len(points_a), len(points_b)), dtype=np.float64)

    # (N, 1, 2) - (M, 2) -> (N, M, 2)
    delta = points_a[:, None, :2] - points_b[None, :, :2]
    return np.sqrt(np.sum(delta ** 2, axis=2))


def greedy_assignment(
    cost_matrix: np.ndarray,
    threshold: float
) -> Tuple[List[Tuple[int, int]], List[int], List[int]]:
    """
    Match each row to its cheapest still-free column, in row order.

    Rows are visited in order and each takes the lowest-cost column not
    already taken; ties go to the lowest column index. A match is kept
    only if its cost is at most ``threshold``. The result depends on row
    order and is not globally optimal.

    Args:
        cost_matrix: Cost matrix of shape (N, M), rows are tracks
        threshold: Maximum cost to accept a match

    Returns:
        matches: List of (track_idx, detection_idx) tuples
        unmatched_tracks: List of track indices without matches
        unmatched_detections: List of detection indices without matches
    """
    n_rows, n_cols = cost_matrix.shape
    used = np.zeros(n_cols, dtype=bool)

    matches = []
    unmatched_tracks = []
    for row in range(n_rows):
        if used.all():
            unmatched_tracks.append(row)
            continue

        costs = np.where(used, np.inf, cost_matrix[row])
        col = int(np.argmin(costs))
        if costs[col] <= threshold:
            matches.append((row, col))
            used[col] = True
        else:
            unmatched_tracks.append(row)

    unmatched_detections = [int(c) for c in np.flatnonzero(~used)]
    return matches, unmatched_tracks, unmatched_detections


def linear_assignment(
    cost_matrix: np.ndarray,
    threshold: float
) -> Tuple[List[Tuple[int, int]], List[int], List[int]]:
    """
    Solve linear assignment problem using Hungarian algorithm.

    Args:
        cost_matrix: Cost matrix of shape (N, M) where N is number of
                     existing tracks and M is number of new detections.
                     Lower cost = better match.
        threshold: Maximum cost to accept a match. Matches with cost
                   above threshold are rejected.

    Returns:
        matches: List of (track_idx, detection_idx) tuples
        unmatched_tracks: List of track indices without matches
        unmatched_detections: List of detection indices without matches
    """
    if cost_matrix.size == 0:
        return (
            [],
            list(range(cost_matrix.shape[0])),
            list(range(cost_matrix.shape[1]))
        )

    # Gate before solving so a far pair can't displace a valid one
    gated = np.where(cost_matrix <= threshold, cost_matrix, threshold * 2 + 1e6)
    row_indices, col_indices = linear_sum_assignment(gated)

    matches = []
    unmatched_tracks = set(range(cost_matrix.shape[0]))
    unmatched_detections = set(range(cost_matrix.shape[1]))

    for row, col in zip(row_indices, col_indices):
        if cost_matrix[row, col] <= threshold:
            matches.append((int(row), int(col)))
            unmatched_tracks.discard(row)
            unmatched_detections.discard(col)

    return matches, sorted(unmatched_tracks), sorted(unmatched_detections)


def associate_detections_to_tracks(
    detections: np.ndarray,
    tracks: np.ndarray,
    max_distance: float = 0.5,
    method: str = "greedy"
) -> Tuple[List[Tuple[int, int]], List[int], List[int]]:
    """
    Associate detections to existing tracks by ground distance.

    This is the main function called by the registry to determine
    which detections correspond to which existing tracks.

    Args:
        detections: Detection ground points, shape (N, 2) or (N, 3)
        tracks: Last track positions, shape (M, 2)
        max_distance: Maximum distance (m) for a valid association
        method: "greedy" nearest neighbour or "optimal" assignment

    Returns:
        matches: List of (track_idx, detection_idx) tuples
        unmatched_tracks: Track indices without matches
        unmatched_detections: Detection indices without matches
    """
    if len(tracks) == 0:
        return [], [], list(range(len(detections)))

    if len(detections) == 0:
        return [], list(range(len(tracks))), []

    distance_matrix = compute_distance_batch(tracks, detections)

    if method == "greedy":
        return greedy_assignment(distance_matrix, threshold=max_distance)
    if method == "optimal":
        return linear_assignment(distance_matrix, threshold=max_distance)
    raise ValueError(f"Unknown association method: {method!r}")
