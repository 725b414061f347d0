"""Test: tick loop and generation transition of the evolution driver."""

import math
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from neuroracer.ec.driver import EvolutionDriver, SimulationBridge
from neuroracer.ec.population import PopulationSnapshot
from neuroracer.exceptions import ConfigurationError, TransitionError
from neuroracer.persistence import SaveGame


def run_generation(driver: EvolutionDriver, bridge, fitness: list[float]) -> None:
    """Place agent i at x = fitness[i] on the first segment, then end the generation."""
    for agent_id, x in enumerate(fitness):
        bridge.positions[agent_id] = (x, 0.0)
    assert driver.tick() is False
    bridge.freeze_all()
    assert driver.tick() is True


def all_params(driver: EvolutionDriver) -> np.ndarray:
    return np.stack([network.get_flat_params() for network in driver.networks])


@pytest.fixture
def setup(make_settings, make_bridge, square_track):
    def _setup(**overrides):
        settings = make_settings(**overrides)
        bridge = make_bridge(settings)
        return EvolutionDriver(settings, square_track, bridge), bridge

    return _setup


class TestConstruction:
    def test_fake_bridge_satisfies_protocol(self, setup) -> None:
        _, bridge = setup(population_size=5)
        assert isinstance(bridge, SimulationBridge)

    def test_input_width_mismatch(self, make_settings, make_bridge, square_track) -> None:
        settings = make_settings(population_size=5)
        bridge = make_bridge(settings)
        bridge._input_width += 1
        with pytest.raises(ConfigurationError, match="inputs per agent"):
            EvolutionDriver(settings, square_track, bridge)

    def test_network_topology_follows_settings(self, setup) -> None:
        driver, _ = setup(population_size=4, sensor_count=3, navigator=True, hidden_layer_count=2)
        assert len(driver.agents) == 4
        assert driver.networks[0].shapes == [(6, 7), (6, 6), (2, 6)]
        assert driver.generation == 1

    def test_same_seed_same_population(self, setup) -> None:
        first, _ = setup(population_size=5, seed=3)
        second, _ = setup(population_size=5, seed=3)
        assert np.array_equal(all_params(first), all_params(second))


class TestTick:
    def test_tick_reports_fitness(self, setup) -> None:
        driver, bridge = setup(population_size=5)
        for agent_id in range(5):
            bridge.positions[agent_id] = (float(agent_id), 0.0)

        assert driver.tick() is False
        assert np.allclose(driver.state.fitness, [0.0, 1.0, 2.0, 3.0, 4.0])
        assert set(bridge.controls) == set(range(5))
        for steering, acceleration in bridge.controls.values():
            assert -1.0 < steering < 1.0
            assert -1.0 < acceleration < 1.0

    def test_dead_agents_are_skipped(self, setup) -> None:
        driver, bridge = setup(population_size=5)
        bridge.alive[1] = False
        driver.tick()
        assert 1 not in bridge.controls
        assert driver.agents[1].alive is False

    def test_failing_agent_is_frozen(self, setup) -> None:
        driver, bridge = setup(population_size=5)
        bridge.inputs[2] = [0.1] * (bridge.input_width - 1)

        assert driver.tick() is False
        assert bridge.frozen == [2]
        assert driver.agents[2].alive is False
        assert len(driver.agents[2].failures) == 1
        assert set(bridge.controls) == {0, 1, 3, 4}

    def test_fail_fast_propagates(self, setup) -> None:
        driver, bridge = setup(population_size=5, fail_fast=True)
        bridge.inputs[2] = [0.1] * (bridge.input_width - 1)
        with pytest.raises(ValueError, match="inputs"):
            driver.tick()

    def test_non_finite_position_freezes_agent(self, setup) -> None:
        driver, bridge = setup(population_size=5)
        for agent_id in range(5):
            bridge.positions[agent_id] = (float(agent_id), 0.0)
        bridge.positions[1] = (math.nan, 0.0)

        assert driver.tick() is False
        assert bridge.frozen == [1]
        assert driver.agents[1].alive is False
        assert "not finite" in driver.agents[1].failures[0]

        bridge.freeze_all()
        assert driver.tick() is True
        assert driver.max_fitness == [4.0]
        assert all(math.isfinite(value) for value in driver.median_fitness)


class TestTransition:
    def test_generation_bookkeeping(self, setup) -> None:
        driver, bridge = setup(population_size=5, spawn_pose=(1.0, 2.0, 0.5))
        run_generation(driver, bridge, [0.0, 1.0, 2.0, 3.0, 4.0])

        assert driver.generation == 2
        assert bridge.generations == [2]
        assert bridge.respawned == [(1.0, 2.0, 0.5)]
        assert bridge.player_respawned == []
        assert driver.max_fitness == [4.0]
        assert driver.median_fitness == [2.0]
        assert np.all(driver.state.fitness == 0.0)
        assert all(agent.alive for agent in driver.agents)
        assert all(agent.meter.window == (3, 0, 1) for agent in driver.agents)

    def test_manual_control_respawns_player(self, setup) -> None:
        driver, bridge = setup(population_size=5, manual_control=True)
        run_generation(driver, bridge, [0.0] * 5)
        assert bridge.player_respawned == [driver.settings.spawn_pose]

    def test_failures_are_cleared_on_respawn(self, setup) -> None:
        driver, bridge = setup(population_size=5)
        bridge.inputs[2] = [0.1] * (bridge.input_width - 1)
        driver.tick()
        assert len(driver.agents[2].failures) == 1

        bridge.freeze_all()
        assert driver.tick() is True
        assert driver.agents[2].failures == []
        assert driver.agents[2].alive

    def test_quiet_suppresses_generation_log(self, setup) -> None:
        driver, bridge = setup(population_size=5, quiet=True)
        with patch("neuroracer.ec.driver.console") as console:
            run_generation(driver, bridge, [0.0] * 5)
        console.log.assert_not_called()

    def test_generation_is_logged(self, setup) -> None:
        driver, bridge = setup(population_size=5, quiet=False)
        with patch("neuroracer.ec.driver.console") as console:
            run_generation(driver, bridge, [0.0, 1.0, 2.0, 3.0, 4.0])
        console.log.assert_called_once()
        message = console.log.call_args.args[0]
        assert "Generation 1" in message
        assert "max = 4.00" in message

    def test_stop_condition(self, setup) -> None:
        driver, bridge = setup(population_size=5, stop_at_generation=2)
        run_generation(driver, bridge, [1.0] * 5)
        assert not driver.finished
        assert not bridge.finished

        run_generation(driver, bridge, [1.0] * 5)
        assert driver.generation == 3
        assert driver.finished
        assert bridge.finished

    def test_elite_survives_unchanged(self, setup) -> None:
        driver, bridge = setup(population_size=5, mutation_chance=100.0, mutation_rate=20.0)
        before = all_params(driver)
        run_generation(driver, bridge, [0.0, 1.0, 2.0, 3.0, 4.0])

        after = all_params(driver)
        assert np.array_equal(after[4], before[4])
        assert not np.array_equal(after[0], before[0])

    def test_top_half_children_inherit_from_top_half(self, setup) -> None:
        driver, bridge = setup(
            population_size=10,
            selection="top_half",
            mutation_chance=100.0,
            mutation_rate=0.0,
        )
        before = all_params(driver)
        run_generation(driver, bridge, [float(i) for i in range(10)])

        after = all_params(driver)
        assert np.array_equal(after[9], before[9])
        for slot in range(9):
            left, right = driver.state.pairs[slot]
            assert left != right
            assert {left, right} <= {5, 6, 7, 8, 9}
            assert np.all((after[slot] == before[left]) | (after[slot] == before[right]))

    def test_worst_random_refreshes_last_slots(self, setup) -> None:
        driver, bridge = setup(population_size=10, selection="worst_random", mutation_chance=0.0)
        for network in driver.networks:
            network.set_flat_params(np.full(network.num_of_parameters, 5.0))
        run_generation(driver, bridge, [float(9 - i) for i in range(10)])

        after = all_params(driver)
        assert np.all(after[:8] == 5.0)
        assert np.all(np.abs(after[8:]) <= 1.0)

    def test_elite_wins_over_randomization(self, setup) -> None:
        driver, bridge = setup(population_size=10, selection="worst_random", mutation_chance=0.0)
        for network in driver.networks:
            network.set_flat_params(np.full(network.num_of_parameters, 5.0))
        run_generation(driver, bridge, [float(i) for i in range(10)])

        after = all_params(driver)
        assert np.all(after[9] == 5.0)
        assert np.all(np.abs(after[8]) <= 1.0)

    def test_snapshot_buffer_is_reused(self, setup) -> None:
        driver, bridge = setup(population_size=5)
        run_generation(driver, bridge, [0.0, 1.0, 2.0, 3.0, 4.0])
        snapshot = driver.state.snapshot
        buffer = snapshot.buffer

        live = all_params(driver)
        run_generation(driver, bridge, [4.0, 3.0, 2.0, 1.0, 0.0])
        assert driver.state.snapshot is snapshot
        assert snapshot.buffer is buffer
        assert np.array_equal(snapshot.as_matrix(), live)

    def test_failure_is_wrapped(self, make_settings, make_bridge, square_track) -> None:
        settings = make_settings(population_size=5)
        bridge = make_bridge(settings)
        selection = MagicMock()
        selection.select_parents.side_effect = RuntimeError("boom")
        driver = EvolutionDriver(settings, square_track, bridge, selection=selection)

        with pytest.raises(TransitionError, match="boom"):
            run_generation(driver, bridge, [0.0] * 5)
        assert driver.generation == 1

    def test_same_seed_same_offspring(self, setup) -> None:
        first, first_bridge = setup(population_size=6, seed=11)
        second, second_bridge = setup(population_size=6, seed=11)
        fitness = [2.0, 5.0, 1.0, 3.0, 0.0, 4.0]
        run_generation(first, first_bridge, fitness)
        run_generation(second, second_bridge, fitness)
        assert np.array_equal(all_params(first), all_params(second))


class TestSaveAndLoad:
    def test_export_save(self, setup) -> None:
        driver, bridge = setup(population_size=5)
        run_generation(driver, bridge, [0.0, 1.0, 2.0, 3.0, 4.0])

        save = driver.export_save()
        assert save.generation_count == 2
        assert save.max_fitness == [4.0]
        assert np.array_equal(save.snapshot.as_matrix(), all_params(driver))

    def test_export_demo_save(self, setup) -> None:
        driver, _ = setup(population_size=5)
        save = driver.export_save(demo=True)
        assert save.is_demo
        assert save.max_fitness == []

    def test_load_restores_weights_and_history(self, setup) -> None:
        donor, _ = setup(population_size=5, seed=1)
        driver, bridge = setup(population_size=5, seed=2)
        save = SaveGame(
            snapshot=PopulationSnapshot.from_networks(donor.networks),
            generation_count=57,
            max_fitness=[1.0, 2.0],
            median_fitness=[0.5, 1.0],
        )

        driver.load_save(save)
        assert np.array_equal(all_params(driver), all_params(donor))
        assert driver.max_fitness == [1.0, 2.0]
        assert driver.median_fitness == [0.5, 1.0]
        assert driver.generation == 1

        run_generation(driver, bridge, [0.0, 1.0, 2.0, 3.0, 4.0])
        assert driver.generation == 58
        assert bridge.generations == [58]
        assert driver.max_fitness == [1.0, 2.0, 4.0]

    def test_demo_load_keeps_generation_counter(self, setup) -> None:
        donor, _ = setup(population_size=5, seed=1)
        driver, bridge = setup(population_size=5, seed=2)
        driver.load_save(donor.export_save(demo=True))

        run_generation(driver, bridge, [0.0] * 5)
        assert driver.generation == 2

    def test_load_rejects_other_population_size(self, setup) -> None:
        donor, _ = setup(population_size=4)
        driver, _ = setup(population_size=5)
        with pytest.raises(ConfigurationError, match="population size"):
            driver.load_save(donor.export_save())

    def test_load_rejects_other_topology(self, setup) -> None:
        donor, _ = setup(population_size=5, neurons_per_layer=3)
        driver, _ = setup(population_size=5)
        with pytest.raises(ConfigurationError, match="layer shapes"):
            driver.load_save(donor.export_save())
