"""Shared fixtures for the lapcat test suite."""

import sys
from pathlib import Path

import pytest

# Ensure src/ and tests/ are on the path so "import lapcat" and "import fakes" work.
repo_root = Path(__file__).resolve().parents[1]
src_path = repo_root / "src"
tests_path = repo_root / "tests"
for p in (src_path, tests_path):
    p_str = str(p)
    if p_str not in sys.path:
        sys.path.insert(0, p_str)

from lapcat.config.settings import load_settings  # noqa: E402
from lapcat.models import CatalogSnapshot, Component, ComponentKind  # noqa: E402
from lapcat.storage.repository import CatalogStore  # noqa: E402
from lapcat.utils.retry import RetryPolicy  # noqa: E402


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def cpu_components():
    """Benchmark CPU rows as stored (clock-speed suffix still attached)."""
    return [
        Component(1, "Intel Core i5-1135G7 @ 2.40GHz", "https://www.cpubenchmark.net/cpu.php?id=1", 10000),
        Component(2, "AMD Ryzen 5 5600H", "https://www.cpubenchmark.net/cpu.php?id=2", 17000),
        Component(3, "Intel Core i7-12700H @ 2.30GHz", "https://www.cpubenchmark.net/cpu.php?id=3", 27000),
    ]


@pytest.fixture
def gpu_components():
    return [
        Component(10, "GeForce MX350", "https://www.videocardbenchmark.net/gpu.php?id=10", 1500),
        Component(11, "GeForce RTX 3050, Laptop", "https://www.videocardbenchmark.net/gpu.php?id=11", 10000),
    ]


@pytest.fixture
def store(tmp_path):
    """Empty schema with only the Unknown rows."""
    s = CatalogStore(tmp_path / "catalog.db")
    s.create_schema()
    return s


@pytest.fixture
def seeded_store(store, cpu_components, gpu_components):
    store.save_components(ComponentKind.CPU, cpu_components)
    store.save_components(ComponentKind.GPU, gpu_components)
    return store


@pytest.fixture
def catalogs(seeded_store):
    return CatalogSnapshot(
        cpus=seeded_store.load_components(ComponentKind.CPU),
        gpus=seeded_store.load_components(ComponentKind.GPU),
    )


@pytest.fixture
def settings(tmp_path):
    """Settings with no real waiting; every sleep in tests is a fake anyway."""
    return load_settings(
        environ={},
        db_path=tmp_path / "catalog.db",
        stabilize_interval=0.0,
        stabilize_max_polls=20,
        listing_retry=RetryPolicy(attempts=3, delay=1.0),
        detail_retry=RetryPolicy(attempts=3, delay=5.0),
    )
