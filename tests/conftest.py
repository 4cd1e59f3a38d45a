"""Pytest configuration for path tracer tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts.
    """
    ti.init(arch=ti.cpu, random_seed=42)
    yield
    # Note: We don't call ti.reset() here as it can cause issues
    # with subsequent tests if any cleanup happens after


@pytest.fixture(autouse=True)
def clear_all_scene_data():
    """Clear scene data before each test.

    This ensures tests are isolated from each other.
    """
    # Import here so the Taichi fields are created after ti.init()
    from src.pathtracer.core.integrator import clear_render_target
    from src.pathtracer.materials.texture import clear_textures
    from src.pathtracer.scene.background import reset_background
    from src.pathtracer.scene.intersection import clear_scene
    from src.pathtracer.scene.lights import clear_lights
    from src.pathtracer.scene.manager import _clear_object_tracking

    def _clear_all():
        clear_scene()
        clear_textures()
        clear_lights()
        reset_background()
        _clear_object_tracking()
        clear_render_target()

    # Clear everything before test
    _clear_all()

    yield

    # Clear everything after test
    _clear_all()
