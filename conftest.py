import pytest

from config import SIM_CONFIG
from sim import Simulation


def quiet_cfg(**overrides):
    cfg = dict(SIM_CONFIG, log_to_console=False)
    cfg.update(overrides)
    return cfg


@pytest.fixture
def sim():
    return Simulation(quiet_cfg())


@pytest.fixture
def two_clusters(sim):
    """A and B, each with gateway gX and standard node nX, gA - gB linked."""
    ids = {"A": sim.create_cluster("A"), "B": sim.create_cluster("B")}
    for c in ("A", "B"):
        ids[f"g{c}"] = sim.create_node(ids[c], f"g{c}", is_gateway=True)
        ids[f"n{c}"] = sim.create_node(ids[c], f"n{c}", is_gateway=False)
    ids["link"] = sim.create_gateway_link(ids["gA"], ids["gB"])
    return sim, ids


def line_of_clusters(sim, names, reverse_links=False):
    """One gateway per cluster, linked in a chain in the given order."""
    ids = {}
    for c in names:
        ids[c] = sim.create_cluster(c)
        ids[f"g{c}"] = sim.create_node(ids[c], f"g{c}", is_gateway=True)
    for left, right in zip(names, names[1:]):
        a, b = ids[f"g{left}"], ids[f"g{right}"]
        if reverse_links:
            a, b = b, a
        ids[f"{left}{right}"] = sim.create_gateway_link(a, b)
    return ids
