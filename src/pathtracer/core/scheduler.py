"""Parallel row scheduling on top of Taichi's worker pool.

A row pass is a Taichi function taking a row index. for_each_row() wraps it
in a kernel whose outermost loop runs over the rows of the image; Taichi
parallelizes that loop over its fixed pool of CPU threads (or GPU threads)
and the call returns only once every row is done. Each row pass writes only
the pixels of its own row, so no synchronization between rows is needed.

The number of CPU worker threads is fixed when the backend is initialized.

Example:
    >>> from src.pathtracer.core.scheduler import BackendConfig, init_backend, for_each_row
    >>> init_backend(BackendConfig(arch="cpu", num_threads=4))
    >>> @ti.func
    ... def shade_row(y: ti.i32):
    ...     for x in range(width[None]):
    ...         image[y, x] = ...
    >>> for_each_row(height, shade_row)
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum

import taichi as ti

logger = logging.getLogger(__name__)

_ARCHS = {
    "cpu": ti.cpu,
    "gpu": ti.gpu,
    "cuda": ti.cuda,
    "vulkan": ti.vulkan,
    "metal": ti.metal,
}


class RowPass(IntEnum):
    """The passes the renderer runs over the image rows."""

    SHADE = 0
    RESOLVE = 1


@dataclass
class BackendConfig:
    """Configuration of the Taichi backend.

    Attributes:
        arch: Backend name ("cpu", "gpu", "cuda", "vulkan" or "metal").
        num_threads: Number of CPU worker threads. None uses all cores,
            1 runs single-threaded.
        random_seed: Seed of Taichi's built-in generator.
    """

    arch: str = "cpu"
    num_threads: int | None = None
    random_seed: int = 0


def init_backend(config: BackendConfig | None = None) -> None:
    """Initialize Taichi.

    Must run before any module declaring Taichi fields is imported.

    Raises:
        ValueError: If the architecture name or thread count is invalid.
    """
    config = config or BackendConfig()
    arch = _ARCHS.get(config.arch.lower())
    if arch is None:
        raise ValueError(f"Unknown arch {config.arch!r}, expected one of {sorted(_ARCHS)}")

    kwargs = {"arch": arch, "random_seed": config.random_seed}
    if config.num_threads is not None:
        if config.num_threads < 1:
            raise ValueError(f"num_threads must be at least 1, got {config.num_threads}")
        kwargs["cpu_max_num_threads"] = config.num_threads

    ti.init(**kwargs)
    logger.info("Taichi initialized: arch=%s threads=%s", config.arch, config.num_threads or "all")


_row_kernels: dict[Callable, Callable] = {}


def _make_row_kernel(row_pass: Callable) -> Callable:
    @ti.kernel
    def run_rows(height: ti.i32):
        for y in range(height):
            row_pass(y)

    return run_rows


def for_each_row(height: int, row_pass: Callable) -> None:
    """Run a row pass over rows [0, height) in parallel and wait for it.

    The kernel for each row pass is compiled once and cached.

    Args:
        height: Number of rows.
        row_pass: A Taichi function taking the row index.

    Raises:
        ValueError: If height is negative.
    """
    if height < 0:
        raise ValueError(f"height must be non-negative, got {height}")
    if height == 0:
        return

    kernel = _row_kernels.get(row_pass)
    if kernel is None:
        kernel = _make_row_kernel(row_pass)
        _row_kernels[row_pass] = kernel
    kernel(height)
    ti.sync()
