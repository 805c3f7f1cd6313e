import argparse
import asyncio

from config import SIM_CONFIG
from sim import Simulation


def build_demo(sim: Simulation):
    """Three clusters in a line (A - B - C), one gateway and two standard nodes each."""
    ids = {}
    for cname in ("A", "B", "C"):
        cid = sim.create_cluster(cname)
        ids[cname] = cid
        ids[f"g{cname}"] = sim.create_node(cid, f"g{cname}", is_gateway=True)
        for k in (1, 2):
            sim.create_node(cid, f"n{cname}{k}", is_gateway=False)
    sim.create_gateway_link(ids["gA"], ids["gB"])
    sim.create_gateway_link(ids["gB"], ids["gC"])
    sim.send_message(ids["A"], "nA1", ids["C"], "nC2", "hello from A")
    sim.send_message(ids["C"], "nC1", ids["A"], "nA2", "hello from C")
    sim.send_message(ids["B"], "nB1", ids["B"], "nB2", "local hello")
    return ids


def main():
    parser = argparse.ArgumentParser(description="Two-tier cluster routing simulator (GDP + ICRP)")
    parser.add_argument("--headless", action="store_true", help="run without the live view")
    parser.add_argument("--seconds", type=float, default=10.0, help="headless run length")
    parser.add_argument("--period", type=int, default=SIM_CONFIG["tick_period_ms"], help="ms per tick")
    parser.add_argument("--quiet", action="store_true", help="do not echo the event log")
    args = parser.parse_args()

    cfg = dict(SIM_CONFIG, tick_period_ms=args.period)
    if args.quiet:
        cfg["log_to_console"] = False
    sim = Simulation(cfg)
    build_demo(sim)

    if args.headless:
        cfg["sim_time_s"] = args.seconds
        sim.start()
        asyncio.run(sim.run())
        sim.report()
        return

    from viz2d import run_live_viz

    print("Starting two-tier routing simulation (GDP announcements, ICRP distance vector, TTL forwarding)")
    sim.start()
    run_live_viz(sim)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        pass
