"""Unit tests for backend configuration and row scheduling."""

import numpy as np
import pytest
import taichi as ti


class TestBackendConfig:
    """Tests for init_backend argument validation.

    Only invalid configurations are exercised here: Taichi is initialized
    once per session by the test fixtures.
    """

    def test_unknown_arch(self):
        """Test an unknown backend name is rejected."""
        from src.pathtracer.core.scheduler import BackendConfig, init_backend

        with pytest.raises(ValueError):
            init_backend(BackendConfig(arch="abacus"))

    def test_invalid_thread_count(self):
        """Test a thread count below one is rejected."""
        from src.pathtracer.core.scheduler import BackendConfig, init_backend

        with pytest.raises(ValueError):
            init_backend(BackendConfig(num_threads=0))

    def test_defaults(self):
        """Test the default configuration uses all CPU cores."""
        from src.pathtracer.core.scheduler import BackendConfig

        config = BackendConfig()
        assert config.arch == "cpu"
        assert config.num_threads is None


class TestForEachRow:
    """Tests for for_each_row."""

    def test_every_row_runs_once(self):
        """Test each row pass writes only its own row, exactly once."""
        from src.pathtracer.core.scheduler import for_each_row

        height, width = 37, 5
        grid = ti.field(dtype=ti.i32, shape=(height, width))

        @ti.func
        def mark_row(y: ti.i32):
            for x in range(width):
                grid[y, x] += y + 1

        for_each_row(height, mark_row)
        expected = np.repeat(np.arange(1, height + 1)[:, None], width, axis=1)
        np.testing.assert_array_equal(grid.to_numpy(), expected)

    def test_partial_height(self):
        """Test rows at or beyond height are untouched."""
        from src.pathtracer.core.scheduler import for_each_row

        rows = ti.field(dtype=ti.i32, shape=10)

        @ti.func
        def touch(y: ti.i32):
            rows[y] = 1

        for_each_row(4, touch)
        np.testing.assert_array_equal(rows.to_numpy(), [1, 1, 1, 1, 0, 0, 0, 0, 0, 0])

    def test_kernel_is_cached(self):
        """Test the same row pass reuses its compiled kernel."""
        from src.pathtracer.core.scheduler import _row_kernels, for_each_row

        counter = ti.field(dtype=ti.i32, shape=())

        @ti.func
        def count(y: ti.i32):
            ti.atomic_add(counter[None], 1)

        for_each_row(3, count)
        kernel = _row_kernels[count]
        for_each_row(5, count)
        assert _row_kernels[count] is kernel
        assert counter[None] == 8

    def test_zero_and_negative_height(self):
        """Test zero rows is a no-op and negative rows are rejected."""
        from src.pathtracer.core.scheduler import for_each_row

        called = ti.field(dtype=ti.i32, shape=())

        @ti.func
        def touch(y: ti.i32):
            called[None] = 1

        for_each_row(0, touch)
        assert called[None] == 0
        with pytest.raises(ValueError):
            for_each_row(-1, touch)
