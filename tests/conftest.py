from __future__ import annotations

import pytest

from fakes import FakeClock, FakeMembership, FakePower, FakeTopology
from nodescale.config import ScalingSettings
from nodescale.scaling import dns
from nodescale.scaling.orchestrator import ScalingOrchestrator


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def topology(clock: FakeClock) -> FakeTopology:
    topo = FakeTopology()

    def _lock_released(_: float) -> None:
        assert not topo.held, "slept while holding the topology read lock"

    clock.on_sleep.append(_lock_released)
    return topo


@pytest.fixture
def power(topology: FakeTopology) -> FakePower:
    return FakePower(topology)


@pytest.fixture
def membership(topology: FakeTopology) -> FakeMembership:
    return FakeMembership(topology)


@pytest.fixture
def orchestrator(
    monkeypatch: pytest.MonkeyPatch,
    clock: FakeClock,
    topology: FakeTopology,
    power: FakePower,
    membership: FakeMembership,
) -> ScalingOrchestrator:
    monkeypatch.setattr(dns, "time", clock)
    return ScalingOrchestrator(topology, power, membership, ScalingSettings())
