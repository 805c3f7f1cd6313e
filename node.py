# node.py
from typing import Any, Dict, List

from routing import Route, self_route


class Node:
    """
    A member of one cluster. Gateways hold the inter-cluster routing table,
    standard nodes hold the gateways they have heard announcing locally.
    """

    def __init__(self, nid: int, name: str, cluster_id: int, cluster_name: str,
                 is_gateway: bool, now: int = 0):
        self.nid = nid
        self.name = name
        self.cluster_id = cluster_id
        self.cluster_name = cluster_name
        self._is_gateway = bool(is_gateway)

        # Standard nodes: gateway name -> last announcement heard (ms)
        self.local_gateways: Dict[str, int] = {}

        # Gateways: destination cluster -> Route
        self.rt: Dict[int, Route] = {}
        if self._is_gateway:
            self.rt[cluster_id] = self_route(self, now)

        # Metrics
        self.originated: int = 0
        self.forwarded: int = 0
        self.delivered: int = 0

    @property
    def is_gateway(self) -> bool:
        return self._is_gateway

    @property
    def role(self) -> str:
        return "gateway" if self._is_gateway else "standard"

    @property
    def label(self) -> str:
        return f"{self.name}@{self.cluster_name}"

    # -------- Gateway discovery --------

    def hear_gateway(self, gw_name: str, now: int):
        self.local_gateways[gw_name] = now

    def expire_gateways(self, now: int, timeout_ms: int) -> List[str]:
        dead = [
            name for name, last in list(self.local_gateways.items())
            if now - last > timeout_ms
        ]
        for name in dead:
            del self.local_gateways[name]
        return dead

    # -------- Summary --------

    def summary(self) -> Dict[str, Any]:
        return {
            "nid": self.nid,
            "name": self.name,
            "cluster_id": self.cluster_id,
            "cluster_name": self.cluster_name,
            "role": self.role,
            "local_gateways": dict(self.local_gateways),
            "routes": {
                d: (r.next_hop, r.next_hop_cluster, r.cost) for d, r in sorted(self.rt.items())
            },
            "originated": self.originated,
            "forwarded": self.forwarded,
            "delivered": self.delivered,
        }

    def __repr__(self) -> str:
        return f"Node({self.nid}, {self.label!r}, {self.role})"
