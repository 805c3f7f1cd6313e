# sim.py
import asyncio
import copy
import random
import threading
from typing import Any, Dict, Optional

from config import SIM_CONFIG
from discovery import run_discovery
from eventlog import EventLog
from forwarding import ForwardingEngine
from messages import Message
from routing import run_route_exchange
from topology import Topology


class Simulation:
    """
    Owns the topology, the message set and the clock.

    One lock covers all state: a tick (GDP -> ICRP -> forwarding) holds it
    from start to finish, and so does every command, so commands coming from
    another thread always land between two ticks.
    """

    def __init__(self, cfg: Dict[str, Any] = SIM_CONFIG, rng: Optional[random.Random] = None):
        self.cfg = cfg
        self.log = EventLog(cfg)
        self.topology = Topology(self.log, cfg)
        self.rng = rng if rng is not None else random.Random(cfg.get("seed"))
        self.forwarding = ForwardingEngine(self.topology, self.log, cfg, self.rng)

        self.now_ms: int = 0
        self.tick_count: int = 0
        self.period_ms: int = cfg["tick_period_ms"]
        self._running = False
        self._closed = False
        self._lock = threading.RLock()

    # -------- Commands --------

    def create_cluster(self, name: str) -> Optional[int]:
        with self._lock:
            return self.topology.add_cluster(name)

    def delete_cluster(self, cid: int) -> bool:
        with self._lock:
            return self.topology.remove_cluster(cid)

    def create_node(self, cid: int, name: str, is_gateway: bool = False) -> Optional[int]:
        with self._lock:
            return self.topology.add_node(cid, name, is_gateway, self.now_ms)

    def delete_node(self, nid: int) -> bool:
        with self._lock:
            return self.topology.remove_node(nid)

    def create_gateway_link(self, nid1: int, nid2: int) -> Optional[int]:
        with self._lock:
            return self.topology.connect_gateways(nid1, nid2)

    def delete_gateway_link(self, lid: int) -> bool:
        with self._lock:
            return self.topology.disconnect_gateways(lid)

    def send_message(self, src_cluster: int, src_name: str, dst_cluster: int, dst_name: str,
                     payload: str = "", ttl: Optional[int] = None) -> Optional[int]:
        with self._lock:
            return self.forwarding.send(src_cluster, src_name, dst_cluster, dst_name,
                                        payload, self.now_ms, ttl)

    def set_tick_period(self, ms: int) -> bool:
        lo, hi = self.cfg["min_tick_period_ms"], self.cfg["max_tick_period_ms"]
        with self._lock:
            if not lo <= ms <= hi:
                self.log.add("CLOCK", f"rejected: tick period {ms}ms outside [{lo}, {hi}]")
                return False
            self.period_ms = int(ms)
            self.log.add("CLOCK", f"tick period set to {self.period_ms}ms")
            return True

    def start(self):
        with self._lock:
            if not self._running:
                self._running = True
                self.log.add("CLOCK", f"simulation started ({self.period_ms}ms/tick)")

    def stop(self):
        with self._lock:
            if self._running:
                self._running = False
                self.log.add("CLOCK", "simulation stopped")

    def toggle(self):
        with self._lock:
            if self._running:
                self.stop()
            else:
                self.start()

    def close(self):
        self._closed = True

    @property
    def running(self) -> bool:
        return self._running

    # -------- Tick --------

    def step(self):
        """Run exactly one tick, whether or not the clock is running."""
        with self._lock:
            self.tick_count += 1
            self.now_ms += self.period_ms
            self.log.set_clock(self.now_ms, self.tick_count)

            topo = self.topology
            run_discovery(topo.nodes.values(), self.now_ms, self.period_ms, self.cfg, self.log)
            run_route_exchange(
                topo.links.values(),
                topo.get_node,
                self.now_ms,
                log=self.log if self.cfg.get("log_dv_changes", True) else None,
                cluster_names=topo.cluster_names(),
            )
            self.forwarding.run(self.now_ms)

    def run_ticks(self, n: int):
        for _ in range(n):
            self.step()

    async def run(self):
        """Periodic driver: ticks while running, sleeps one period between ticks."""
        limit_s = self.cfg.get("sim_time_s")
        loop = asyncio.get_running_loop()
        t0 = loop.time()
        while not self._closed:
            if limit_s is not None and loop.time() - t0 >= limit_s:
                break
            if self._running:
                self.step()
            await asyncio.sleep(self.period_ms / 1000.0)

    # -------- Queries --------

    @property
    def messages(self) -> Dict[int, Message]:
        """Active set by id. The dict is a copy; the messages are the live objects."""
        with self._lock:
            return dict(self.forwarding.messages)

    def describe_node(self, nid: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            node = self.topology.get_node(nid)
            if node is None:
                return None
            info = node.summary()
            names = self.topology.cluster_names()
            info["routes"] = {
                names.get(dest, f"#{dest}"): {
                    "next_hop": hop, "next_hop_cluster": names.get(hop_cid, f"#{hop_cid}"), "cost": cost,
                }
                for dest, (hop, hop_cid, cost) in info["routes"].items()
            }
            return info

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            topo = self.topology
            return {
                "time_ms": self.now_ms,
                "tick": self.tick_count,
                "period_ms": self.period_ms,
                "running": self._running,
                "clusters": {cid: c.name for cid, c in topo.clusters.items()},
                "nodes": {nid: n.summary() for nid, n in topo.nodes.items()},
                "links": {lid: (l.a_id, l.b_id) for lid, l in topo.links.items()},
                "messages": [copy.deepcopy(m) for m in self.forwarding.messages.values()],
                "log": list(self.log.entries),
            }

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            fw = self.forwarding
            hops = fw.hops_used
            return {
                "clusters": len(self.topology.clusters),
                "nodes": len(self.topology.nodes),
                "links": len(self.topology.links),
                "sent": fw.sent,
                "delivered": fw.delivered,
                "dropped": fw.dropped,
                "in_flight": sum(1 for m in fw.messages.values() if not m.is_terminal),
                "delivery_ratio": (fw.delivered / fw.sent) if fw.sent else 0.0,
                "avg_hops": (sum(hops) / len(hops)) if hops else None,
            }

    def report(self):
        with self._lock:
            s = self.stats()
            print("\n=== Simulation Summary ===")
            print(f"Clusters: {s['clusters']}  Nodes: {s['nodes']}  Links: {s['links']}  "
                  f"Ticks: {self.tick_count}  Period: {self.period_ms} ms")
            print(f"Sent: {s['sent']}  Delivered: {s['delivered']}  Dropped: {s['dropped']}  "
                  f"In flight: {s['in_flight']}")
            print(f"Delivery ratio: {s['delivery_ratio']:.3f}")
            if s["avg_hops"] is not None:
                print(f"Avg hops: {s['avg_hops']:.3f}")
            for gw in self.topology.gateways():
                routes = {self.topology.cluster_name(d): (r.next_hop, r.cost) for d, r in sorted(gw.rt.items())}
                print(f"  {gw.label}: {routes}")

