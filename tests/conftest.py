"""
Shared fixtures: a 640x480 camera mounted 1 m above the floor, looking
along the world +x axis with its optical axis parallel to the ground.

With this pose a world point (x, y, z) lands on pixel
u = 320 - 500 * y / x, v = 240 + 500 * (1 - z) / x.
"""

import numpy as np
import pytest

from gaze_tracker.geometry import CameraModel

K = np.array([
    [500.0, 0.0, 320.0],
    [0.0, 500.0, 240.0],
    [0.0, 0.0, 1.0],
])

CAMERA_TO_WORLD = np.array([
    [0.0, 0.0, 1.0, 0.0],
    [-1.0, 0.0, 0.0, 0.0],
    [0.0, -1.0, 0.0, 1.0],
    [0.0, 0.0, 0.0, 1.0],
])


def make_person_box(x, y, height=1.7, width=100.0):
    """Image box [x1, y1, x2, y2] of a person standing at world (x, y)."""
    u = 320.0 - 500.0 * y / x
    v_feet = 240.0 + 500.0 / x
    v_head = 240.0 + 500.0 * (1.0 - height) / x
    return np.array([u - width / 2, v_head, u + width / 2, v_feet])


@pytest.fixture
def camera():
    return CameraModel(K.copy())


@pytest.fixture
def camera_to_world():
    return CAMERA_TO_WORLD.copy()


@pytest.fixture
def person_box():
    return make_person_box
