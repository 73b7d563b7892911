from __future__ import annotations

import pytest

from fakes import FakeClock, FakeMembership, FakePower, FakeTopology, FaultInjectingMembership
from nodescale.config import ScalingSettings
from nodescale.constants import Direction, VerifyMode
from nodescale.scaling import dns
from nodescale.scaling.orchestrator import ScalingOrchestrator, summarize
from nodescale.types import ScalingRequest


def _boot(topology: FakeTopology, names: dict[str, str]):
    def on_power_on(vm_ids: object) -> None:
        topology.names.update(names)

    return on_power_on


class TestEnableNodes:
    def test_enable_reports_active_vms(
        self,
        orchestrator: ScalingOrchestrator,
        topology: FakeTopology,
        power: FakePower,
        membership: FakeMembership,
    ) -> None:
        topology.add_cluster("cidA")
        topology.names.update(vm1=None, vm2=None)
        power.on_power_on = _boot(topology, {"vm1": "tt1", "vm2": "tt2"})

        active = orchestrator.enable_nodes({"vm1", "vm2"}, 2, "cidA")

        assert active == {"vm1", "vm2"}
        assert membership.recommissioned == [frozenset({"vm1", "vm2"})]
        assert power.calls == [(frozenset({"vm1", "vm2"}), True)]
        assert membership.verified == [(VerifyMode.RECOMMISSION, frozenset({"tt1", "tt2"}), 2)]

    def test_no_coordinator_is_a_no_op(
        self,
        orchestrator: ScalingOrchestrator,
        topology: FakeTopology,
        power: FakePower,
        membership: FakeMembership,
    ) -> None:
        topology.add_cluster("cidA", coordinator=None)

        assert orchestrator.enable_nodes({"vm1"}, 1, "cidA") is None
        assert orchestrator.enable_nodes({"vm1"}, 1, "unknown") is None
        assert power.calls == []
        assert membership.recommissioned == []

    def test_power_request_failure_stops(
        self,
        orchestrator: ScalingOrchestrator,
        topology: FakeTopology,
        power: FakePower,
        membership: FakeMembership,
        clock: FakeClock,
    ) -> None:
        topology.add_cluster("cidA")
        topology.names.update(vm1=None)
        power.unavailable = True

        assert orchestrator.enable_nodes({"vm1"}, 1, "cidA") is None
        assert membership.verified == []
        assert clock.sleeps == []

    def test_power_on_step_failure_skips_dns_wait(
        self,
        orchestrator: ScalingOrchestrator,
        topology: FakeTopology,
        power: FakePower,
        membership: FakeMembership,
        clock: FakeClock,
    ) -> None:
        topology.add_cluster("cidA")
        topology.names.update(vm1=None)
        power.power_on_error = "host in maintenance mode"

        assert orchestrator.enable_nodes({"vm1"}, 1, "cidA") is None
        assert membership.verified == []
        assert clock.sleeps == []

    def test_vms_deleted_during_wait(
        self,
        orchestrator: ScalingOrchestrator,
        topology: FakeTopology,
        power: FakePower,
        membership: FakeMembership,
        clock: FakeClock,
    ) -> None:
        topology.add_cluster("cidA")
        topology.names.update(vm1=None, vm2=None)

        def delete(now: float) -> None:
            if now >= 10:
                topology.deleted = True

        clock.on_sleep.append(delete)

        assert orchestrator.enable_nodes({"vm1", "vm2"}, 2, "cidA") is None
        assert membership.verified == []
        assert clock.now < 120

    def test_partial_dns_convergence_verifies_resolved_only(
        self,
        orchestrator: ScalingOrchestrator,
        topology: FakeTopology,
        power: FakePower,
        membership: FakeMembership,
        clock: FakeClock,
    ) -> None:
        topology.add_cluster("cidA")
        topology.names.update(vm1=None, vm2=None)
        power.on_power_on = _boot(topology, {"vm1": "tt1"})

        active = orchestrator.enable_nodes({"vm1", "vm2"}, 2, "cidA")

        assert active == {"vm1"}
        assert membership.verified == [(VerifyMode.RECOMMISSION, frozenset({"tt1"}), 2)]
        assert clock.now > ScalingSettings().dns_timeout

    def test_cached_names_do_not_wait(
        self,
        orchestrator: ScalingOrchestrator,
        topology: FakeTopology,
        clock: FakeClock,
    ) -> None:
        topology.add_cluster("cidA")
        topology.names.update(vm1="tt1")

        assert orchestrator.enable_nodes({"vm1"}, 1, "cidA") == {"vm1"}
        assert clock.sleeps == []

    def test_verification_unavailable(
        self,
        orchestrator: ScalingOrchestrator,
        topology: FakeTopology,
        membership: FakeMembership,
    ) -> None:
        topology.add_cluster("cidA")
        topology.names.update(vm1="tt1")
        membership.listing_unavailable = True

        assert orchestrator.enable_nodes({"vm1"}, 1, "cidA") is None

    def test_never_active_without_power_on(
        self,
        orchestrator: ScalingOrchestrator,
        topology: FakeTopology,
        power: FakePower,
        membership: FakeMembership,
    ) -> None:
        topology.add_cluster("cidA")
        topology.names.update(vm1="tt1", vm2="tt2")
        membership.active = {"tt1", "tt2"}
        power.unavailable = True

        assert orchestrator.enable_nodes({"vm1", "vm2"}, 2, "cidA") is None

    def test_injected_recommission_failure_does_not_block_power_on(
        self,
        clock: FakeClock,
        topology: FakeTopology,
        power: FakePower,
        membership: FakeMembership,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(dns, "time", clock)
        faulty = FaultInjectingMembership(membership)
        faulty.queue_recommission_failure(500)
        orchestrator = ScalingOrchestrator(topology, power, faulty)
        topology.add_cluster("cidA")
        topology.names.update(vm1="tt1")

        assert orchestrator.enable_nodes({"vm1"}, 1, "cidA") == {"vm1"}
        assert faulty.injected == [500]
        assert power.calls == [(frozenset({"vm1"}), True)]


class TestDisableNodes:
    def test_unresolved_vm_is_only_powered_off(
        self,
        orchestrator: ScalingOrchestrator,
        topology: FakeTopology,
        power: FakePower,
        membership: FakeMembership,
    ) -> None:
        topology.add_cluster("cidB")
        topology.names.update(vm3=None)

        successful = orchestrator.disable_nodes({"vm3"}, 1, "cidB")

        assert successful == set()
        assert membership.decommissioned == []
        assert membership.verified == [(VerifyMode.DECOMMISSION, frozenset(), 2)]
        assert power.calls == [(frozenset({"vm3"}), False)]

    def test_mixed_names(
        self,
        orchestrator: ScalingOrchestrator,
        topology: FakeTopology,
        power: FakePower,
        membership: FakeMembership,
    ) -> None:
        topology.add_cluster("cid")
        topology.names.update(vm1="tt1", vm2="", vm3="tt3")
        membership.active = {"tt1", "tt3", "tt9"}

        successful = orchestrator.disable_nodes({"vm1", "vm2", "vm3"}, 3, "cid")

        assert successful == {"vm1", "vm3"}
        assert membership.decommissioned == [frozenset({"tt1", "tt3"})]
        assert membership.verified == [(VerifyMode.DECOMMISSION, frozenset({"tt1", "tt3"}), 4)]
        assert power.calls == [(frozenset({"vm1", "vm2", "vm3"}), False)]

    def test_stuck_node_is_not_reported(
        self,
        orchestrator: ScalingOrchestrator,
        topology: FakeTopology,
        power: FakePower,
        membership: FakeMembership,
    ) -> None:
        topology.add_cluster("cid")
        topology.names.update(vm1="tt1", vm2="tt2")
        membership.active = {"tt1", "tt2"}
        membership.stuck = {"tt2"}

        assert orchestrator.disable_nodes({"vm1", "vm2"}, 0, "cid") == {"vm1"}
        assert power.calls == [(frozenset({"vm1", "vm2"}), False)]

    def test_decommission_failure_still_powers_off(
        self,
        topology: FakeTopology,
        power: FakePower,
        membership: FakeMembership,
    ) -> None:
        faulty = FaultInjectingMembership(membership)
        faulty.queue_decommission_failure(3)
        orchestrator = ScalingOrchestrator(topology, power, faulty)
        topology.add_cluster("cid")
        topology.names.update(vm1="tt1", vm2=None)
        membership.active = {"tt1"}

        successful = orchestrator.disable_nodes({"vm1", "vm2"}, 1, "cid")

        assert successful == set()
        assert faulty.injected == [3]
        assert membership.verified == []
        assert power.calls == [(frozenset({"vm1", "vm2"}), False)]

    def test_unverifiable_decommission_reports_nothing(
        self,
        orchestrator: ScalingOrchestrator,
        topology: FakeTopology,
        power: FakePower,
        membership: FakeMembership,
    ) -> None:
        topology.add_cluster("cid")
        topology.names.update(vm1="tt1")
        membership.listing_unavailable = True

        assert orchestrator.disable_nodes({"vm1"}, 0, "cid") == set()
        assert power.calls == [(frozenset({"vm1"}), False)]

    def test_power_off_failure_keeps_result(
        self,
        orchestrator: ScalingOrchestrator,
        topology: FakeTopology,
        power: FakePower,
        membership: FakeMembership,
    ) -> None:
        topology.add_cluster("cid")
        topology.names.update(vm1="tt1")
        membership.active = {"tt1"}
        power.unavailable = True

        assert orchestrator.disable_nodes({"vm1"}, 0, "cid") == {"vm1"}
        assert len(power.calls) == 1

    def test_unknown_vms_are_a_no_op(
        self,
        orchestrator: ScalingOrchestrator,
        topology: FakeTopology,
        power: FakePower,
    ) -> None:
        topology.add_cluster("cid")

        assert orchestrator.disable_nodes({"ghost"}, 0, "cid") is None
        assert power.calls == []

    def test_no_coordinator_is_a_no_op(
        self,
        orchestrator: ScalingOrchestrator,
        topology: FakeTopology,
        power: FakePower,
        membership: FakeMembership,
    ) -> None:
        topology.add_cluster("cid", coordinator=None)
        topology.names.update(vm1="tt1")

        assert orchestrator.disable_nodes({"vm1"}, 0, "cid") is None
        assert power.calls == []
        assert membership.decommissioned == []

    @pytest.mark.parametrize(
        ("names", "target", "expected"),
        [
            ({"a": "n1", "b": "n2"}, 5, 5),
            ({"a": None, "b": "n2"}, 5, 6),
            ({"a": "", "b": " ", "c": None}, 0, 3),
            ({}, 4, 4),
        ],
    )
    def test_target_adjusted_by_unresolved_count(
        self,
        orchestrator: ScalingOrchestrator,
        topology: FakeTopology,
        power: FakePower,
        membership: FakeMembership,
        names: dict[str, str | None],
        target: int,
        expected: int,
    ) -> None:
        topology.add_cluster("cid")
        topology.names.update(names)

        orchestrator.disable_nodes(set(names), target, "cid")

        assert membership.verified[-1][2] == expected
        assert power.calls == [(frozenset(names), False)]


class TestQueriesAndDispatch:
    def test_active_nodes(
        self, orchestrator: ScalingOrchestrator, topology: FakeTopology, membership: FakeMembership
    ) -> None:
        topology.add_cluster("cid")
        topology.add_cluster("empty", coordinator=None)
        membership.active = {"tt1", "tt2"}

        assert orchestrator.active_nodes("cid") == {"tt1", "tt2"}
        assert orchestrator.active_nodes("empty") is None

    def test_apply_dispatches_on_direction(
        self,
        orchestrator: ScalingOrchestrator,
        topology: FakeTopology,
        power: FakePower,
        membership: FakeMembership,
    ) -> None:
        topology.add_cluster("cid")
        topology.names.update(vm1="tt1")

        enabled = orchestrator.apply(ScalingRequest(frozenset({"vm1"}), 1, "cid", Direction.ENABLE))
        disabled = orchestrator.apply(ScalingRequest(frozenset({"vm1"}), 0, "cid", Direction.DISABLE))

        assert enabled == {"vm1"}
        assert disabled == {"vm1"}
        assert [on for _, on in power.calls] == [True, False]


@pytest.mark.parametrize(
    ("membership_count", "power_count", "decommission", "expected"),
    [
        (2, 0, False, "recommissioning 2 nodes"),
        (1, 1, True, "decommissioning 1 node; powering off 1 node"),
        (0, 3, True, "powering off 3 nodes"),
        (0, 0, True, "nothing to do"),
    ],
)
def test_summarize(membership_count: int, power_count: int, decommission: bool, expected: str) -> None:
    assert summarize(membership_count, power_count, decommission) == expected
