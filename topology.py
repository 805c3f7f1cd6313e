import itertools
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from node import Node
from routing import forget_cluster, withdraw_via


@dataclass
class Cluster:
    cid: int
    name: str


@dataclass
class GatewayConnection:
    lid: int
    a_id: int
    b_id: int

    def touches(self, nid: int) -> bool:
        return nid == self.a_id or nid == self.b_id

    def joins(self, x: int, y: int) -> bool:
        return {self.a_id, self.b_id} == {x, y}


class Topology:
    """
    Clusters, nodes and gateway links.

    Every command either applies completely (including its cascades) or is
    rejected with a TOPO log entry and leaves the store untouched.
    """

    def __init__(self, log: Any, cfg: Optional[Dict[str, Any]] = None):
        self.log = log
        self.cfg = cfg or {}
        self.clusters: Dict[int, Cluster] = {}
        self.nodes: Dict[int, Node] = {}
        self.links: Dict[int, GatewayConnection] = {}
        self._cluster_ids = itertools.count(1)
        self._node_ids = itertools.count(1)
        self._link_ids = itertools.count(1)

    def _reject(self, text: str):
        self.log.add("TOPO", f"rejected: {text}")

    def _dv_log(self):
        return self.log if self.cfg.get("log_dv_changes", True) else None

    # -------- Queries --------

    def cluster_names(self) -> Dict[int, str]:
        return {cid: c.name for cid, c in self.clusters.items()}

    def cluster_name(self, cid: int) -> str:
        c = self.clusters.get(cid)
        return c.name if c is not None else f"#{cid}"

    def get_node(self, nid: int) -> Optional[Node]:
        return self.nodes.get(nid)

    def find_node(self, cid: int, name: str) -> Optional[Node]:
        for node in self.nodes.values():
            if node.cluster_id == cid and node.name == name:
                return node
        return None

    def nodes_in(self, cid: int) -> List[Node]:
        return [n for n in self.nodes.values() if n.cluster_id == cid]

    def gateways(self) -> List[Node]:
        return [n for n in self.nodes.values() if n.is_gateway]

    def links_of(self, nid: int) -> List[GatewayConnection]:
        return [l for l in self.links.values() if l.touches(nid)]

    def find_link(self, x: int, y: int) -> Optional[GatewayConnection]:
        for link in self.links.values():
            if link.joins(x, y):
                return link
        return None

    # -------- Clusters --------

    def add_cluster(self, name: str) -> Optional[int]:
        if not name or not name.strip():
            self._reject("cluster name must not be empty")
            return None
        cid = next(self._cluster_ids)
        self.clusters[cid] = Cluster(cid, name.strip())
        self.log.add("TOPO", f"cluster '{name.strip()}' (id {cid}) created")
        return cid

    def remove_cluster(self, cid: int) -> bool:
        cluster = self.clusters.get(cid)
        if cluster is None:
            self._reject(f"cluster {cid} does not exist")
            return False
        for node in self.nodes_in(cid):
            self._remove_node(node)
        del self.clusters[cid]
        purged = forget_cluster(self.gateways(), cid)
        self.log.add(
            "TOPO",
            f"cluster '{cluster.name}' (id {cid}) removed"
            + (f", {purged} route(s) to it purged" if purged else ""),
        )
        return True

    # -------- Nodes --------

    def add_node(self, cid: int, name: str, is_gateway: bool, now: int = 0) -> Optional[int]:
        cluster = self.clusters.get(cid)
        if cluster is None:
            self._reject(f"cannot add node '{name}': cluster {cid} does not exist")
            return None
        if not name or not name.strip():
            self._reject(f"node name must not be empty (cluster '{cluster.name}')")
            return None
        name = name.strip()
        if self.find_node(cid, name) is not None:
            self._reject(f"node '{name}' already exists in cluster '{cluster.name}'")
            return None
        nid = next(self._node_ids)
        node = Node(nid, name, cid, cluster.name, is_gateway, now)
        self.nodes[nid] = node
        self.log.add("TOPO", f"{node.role} node '{node.label}' (id {nid}) added")
        return nid

    def remove_node(self, nid: int) -> bool:
        node = self.nodes.get(nid)
        if node is None:
            self._reject(f"node {nid} does not exist")
            return False
        self._remove_node(node)
        return True

    def _remove_node(self, node: Node):
        for link in self.links_of(node.nid):
            self._remove_link(link)
        del self.nodes[node.nid]
        self.log.add("TOPO", f"node '{node.label}' (id {node.nid}) removed")

    # -------- Gateway links --------

    def connect_gateways(self, x: int, y: int) -> Optional[int]:
        a = self.nodes.get(x)
        b = self.nodes.get(y)
        if a is None or b is None:
            self._reject(f"cannot link {x} and {y}: node does not exist")
            return None
        if not a.is_gateway or not b.is_gateway:
            self._reject(f"cannot link '{a.label}' and '{b.label}': only gateways can be linked")
            return None
        if a.cluster_id == b.cluster_id:
            self._reject(f"cannot link '{a.label}' and '{b.label}': same cluster")
            return None
        if self.find_link(x, y) is not None:
            self._reject(f"'{a.label}' and '{b.label}' are already linked")
            return None
        lid = next(self._link_ids)
        self.links[lid] = GatewayConnection(lid, x, y)
        self.log.add("TOPO", f"gateways '{a.label}' and '{b.label}' linked (link {lid})")
        return lid

    def disconnect_gateways(self, lid: int) -> bool:
        link = self.links.get(lid)
        if link is None:
            self._reject(f"link {lid} does not exist")
            return False
        self._remove_link(link)
        return True

    def _remove_link(self, link: GatewayConnection):
        del self.links[link.lid]
        a = self.nodes.get(link.a_id)
        b = self.nodes.get(link.b_id)
        names = self.cluster_names()
        if a is not None and b is not None:
            withdraw_via(a, b, log=self._dv_log(), cluster_names=names)
            withdraw_via(b, a, log=self._dv_log(), cluster_names=names)
        label_a = a.label if a is not None else f"#{link.a_id}"
        label_b = b.label if b is not None else f"#{link.b_id}"
        self.log.add("TOPO", f"gateways '{label_a}' and '{label_b}' unlinked (link {link.lid})")

    # -------- Integrity --------

    def integrity_errors(self) -> List[str]:
        errors = []
        seen_names = set()
        for node in self.nodes.values():
            if node.cluster_id not in self.clusters:
                errors.append(f"node {node.nid} belongs to missing cluster {node.cluster_id}")
            key = (node.cluster_id, node.name)
            if key in seen_names:
                errors.append(f"duplicate node name {node.name!r} in cluster {node.cluster_id}")
            seen_names.add(key)
        pairs = set()
        for link in self.links.values():
            a = self.nodes.get(link.a_id)
            b = self.nodes.get(link.b_id)
            if a is None or b is None:
                errors.append(f"link {link.lid} has a missing endpoint")
                continue
            if not (a.is_gateway and b.is_gateway):
                errors.append(f"link {link.lid} joins a non-gateway")
            if a.cluster_id == b.cluster_id:
                errors.append(f"link {link.lid} joins one cluster to itself")
            pair = frozenset((link.a_id, link.b_id))
            if pair in pairs:
                errors.append(f"link {link.lid} duplicates another link")
            pairs.add(pair)
        for gw in self.gateways():
            for dest, route in gw.rt.items():
                if dest not in self.clusters:
                    errors.append(f"gateway {gw.label} routes to missing cluster {dest}")
                if route.cost == 0:
                    continue
                hop = self.find_node(route.next_hop_cluster, route.next_hop)
                if hop is None or self.find_link(gw.nid, hop.nid) is None:
                    errors.append(f"gateway {gw.label} routes to {dest} via unlinked '{route.next_hop}'")
        return errors
