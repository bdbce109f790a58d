"""
Adaptive Resource Management for page rasterization.

Detects available system resources (RAM, CPU) and maps them onto a worker
plan for the rasterizer. Systems with more resources get higher parallelism
and bigger chunks; constrained systems render one page at a time.

Resource tiers:
  - CONSTRAINED: < 2 GB available RAM → single worker, chunks of 5 pages
  - MODERATE:    2-6 GB available RAM → half the CPUs, chunks of 10 pages
  - ABUNDANT:    > 6 GB available RAM → all CPUs, chunks of 20 pages
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum, auto

import psutil

from pdfebook.constants import (
    BALANCED_CHUNK_SIZE,
    HIGH_PERFORMANCE_CHUNK_SIZE,
    LOW_MEMORY_CHUNK_SIZE,
    RESOURCE_TIER_CONSTRAINED_GB,
    RESOURCE_TIER_MODERATE_GB,
)

logger = logging.getLogger(__name__)


class ResourceTier(Enum):
    """System resource tier for adaptive configuration."""

    CONSTRAINED = auto()  # < 2 GB free RAM
    MODERATE = auto()  # 2-6 GB free RAM
    ABUNDANT = auto()  # > 6 GB free RAM


@dataclass(frozen=True)
class ResourceProfile:
    """Snapshot of available system resources.

    Attributes:
        available_ram_mb: Currently available RAM in MB
        total_ram_mb: Total system RAM in MB
        cpu_count: Number of logical CPU cores
        tier: Computed resource tier
    """

    available_ram_mb: int
    total_ram_mb: int
    cpu_count: int
    tier: ResourceTier


@dataclass(frozen=True)
class WorkerPlan:
    """Rasterizer scheduling derived from a resource tier.

    Attributes:
        max_workers: Pages rendered in parallel within one chunk
        chunk_size: Pages per sequential chunk
    """

    max_workers: int
    chunk_size: int


def classify_tier(available_mb: int) -> ResourceTier:
    """Map available RAM onto a resource tier."""
    available_gb = available_mb / 1024
    if available_gb < RESOURCE_TIER_CONSTRAINED_GB:
        return ResourceTier.CONSTRAINED
    if available_gb < RESOURCE_TIER_MODERATE_GB:
        return ResourceTier.MODERATE
    return ResourceTier.ABUNDANT


def detect_resources() -> ResourceProfile:
    """Detect current system resources.

    Respects cgroup v2 memory limits so containers and systemd slices are
    not mistaken for the whole machine.

    Returns:
        ResourceProfile with current system state.
    """
    cpu_count = os.cpu_count() or 4

    mem = psutil.virtual_memory()
    available_mb = int(mem.available / (1024 * 1024))
    total_mb = int(mem.total / (1024 * 1024))

    try:
        with open("/sys/fs/cgroup/memory.max") as f:
            raw = f.read().strip()
            if raw != "max":
                cgroup_limit_mb = int(raw) // (1024 * 1024)
                total_mb = min(total_mb, cgroup_limit_mb)
                available_mb = min(available_mb, cgroup_limit_mb)
    except (OSError, ValueError):
        pass

    tier = classify_tier(available_mb)
    profile = ResourceProfile(
        available_ram_mb=available_mb,
        total_ram_mb=total_mb,
        cpu_count=cpu_count,
        tier=tier,
    )

    logger.info(
        f"Resource detection: {available_mb} MB available / {total_mb} MB total, "
        f"{cpu_count} CPUs → {tier.name}"
    )

    return profile


def compute_worker_plan(tier: ResourceTier, cpu_count: int) -> WorkerPlan:
    """Compute the rasterizer worker plan for a resource tier.

    Args:
        tier: Resource tier (explicit profile or detected).
        cpu_count: Logical CPUs available to the process.

    Returns:
        WorkerPlan with at least one worker.
    """
    cpu_count = max(1, cpu_count)

    if tier == ResourceTier.CONSTRAINED:
        plan = WorkerPlan(max_workers=1, chunk_size=LOW_MEMORY_CHUNK_SIZE)
    elif tier == ResourceTier.MODERATE:
        plan = WorkerPlan(max_workers=max(1, cpu_count // 2), chunk_size=BALANCED_CHUNK_SIZE)
    else:  # ABUNDANT
        plan = WorkerPlan(max_workers=cpu_count, chunk_size=HIGH_PERFORMANCE_CHUNK_SIZE)

    logger.debug(
        f"Worker plan for {tier.name}: workers={plan.max_workers}, chunk={plan.chunk_size}"
    )
    return plan
