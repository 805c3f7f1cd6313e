import itertools
import random
from typing import Any, Dict, List, Optional

from messages import Message, MessageStatus
from node import Node


class ForwardingEngine:
    """
    Hop-by-hop forwarding over the state GDP and ICRP maintain.

    Each tick every moving message makes at most one hop. Inside its
    destination cluster a message goes straight to the destination node;
    elsewhere a gateway follows its routing table and a standard node hands
    the message to one of its known local gateways, picked uniformly.
    """

    def __init__(self, topology: Any, log: Any, cfg: Dict[str, Any],
                 rng: Optional[random.Random] = None):
        self.topology = topology
        self.log = log
        self.cfg = cfg
        self.rng = rng if rng is not None else random.Random(cfg.get("seed"))
        self.messages: Dict[int, Message] = {}
        self._ids = itertools.count(1)

        # Metrics
        self.sent: int = 0
        self.delivered: int = 0
        self.dropped: int = 0
        self.hops_used: List[int] = []

    # -------- Commands --------

    def send(self, src_cluster: int, src_name: str, dst_cluster: int, dst_name: str,
             payload: str, now: int, ttl: Optional[int] = None) -> Optional[int]:
        src = self.topology.find_node(src_cluster, src_name)
        if src is None:
            self.log.add(
                "MSG",
                f"rejected: source node '{src_name}' does not exist in cluster "
                f"'{self.topology.cluster_name(src_cluster)}'",
            )
            return None
        mid = next(self._ids)
        msg = Message(
            mid=mid,
            src_cluster=src_cluster,
            src_name=src.name,
            dst_cluster=dst_cluster,
            dst_name=dst_name,
            payload=payload,
            ttl=self.cfg.get("initial_ttl", 10) if ttl is None else ttl,
            current_node=src.nid,
            created_at=now,
        )
        self.messages[mid] = msg
        src.originated += 1
        self.sent += 1
        self.log.add(
            "MSG",
            f"message {mid} sent from '{src.label}' to "
            f"'{dst_name}@{self.topology.cluster_name(dst_cluster)}' (TTL {msg.ttl})",
        )
        return mid

    # -------- Tick --------

    def run(self, now: int):
        self.reap(now)
        for msg in list(self.messages.values()):
            if msg.status is MessageStatus.MOVING:
                self.advance(msg, now)

    def reap(self, now: int) -> List[Message]:
        grace = self.cfg.get("message_grace_ms", 1000)
        done = [
            m for m in self.messages.values()
            if m.is_terminal and now - m.finished_at >= grace
        ]
        for m in done:
            del self.messages[m.mid]
        return done

    def advance(self, msg: Message, now: int):
        topo = self.topology
        node = topo.get_node(msg.current_node)
        if node is None:
            self._drop(msg, now, "current node no longer exists")
            return
        if msg.ttl <= 0:
            self._drop(msg, now, f"TTL exhausted at '{node.label}'")
            return

        msg.trace.append(node.name)

        # checked on every hop, so a missing destination never leaves the source
        dest = topo.find_node(msg.dst_cluster, msg.dst_name)
        if dest is None:
            self._drop(
                msg, now,
                f"destination '{msg.dst_name}' does not exist in cluster "
                f"'{topo.cluster_name(msg.dst_cluster)}'",
            )
            return

        if msg.dst_cluster == node.cluster_id:
            if dest.nid == node.nid:
                self._deliver(msg, node, now)
                return
            nxt = dest
        elif node.is_gateway:
            nxt = self._gateway_next_hop(msg, node, now)
        else:
            nxt = self._standard_next_hop(msg, node, now)
        if nxt is None:
            return

        msg.current_node = nxt.nid
        msg.ttl -= 1
        msg.hop_count += 1
        node.forwarded += 1
        if self.cfg.get("log_hops", True):
            self.log.add(
                "MSG",
                f"message {msg.mid} routed from '{node.label}' to '{nxt.label}', TTL {msg.ttl}",
            )

    def _gateway_next_hop(self, msg: Message, node: Node, now: int) -> Optional[Node]:
        route = node.rt.get(msg.dst_cluster)
        if route is None:
            self._drop(
                msg, now,
                f"gateway '{node.label}' has no route to cluster "
                f"'{self.topology.cluster_name(msg.dst_cluster)}'",
            )
            return None
        nxt = self.topology.find_node(route.next_hop_cluster, route.next_hop)
        if nxt is None:
            self._drop(msg, now, f"gateway '{node.label}' cannot resolve next hop '{route.next_hop}'")
            return None
        return nxt

    def _standard_next_hop(self, msg: Message, node: Node, now: int) -> Optional[Node]:
        names = sorted(node.local_gateways)
        if not names:
            self._drop(msg, now, f"standard node '{node.label}' knows no local gateway")
            return None
        chosen = self.rng.choice(names)
        nxt = self.topology.find_node(node.cluster_id, chosen)
        if nxt is None or not nxt.is_gateway:
            self._drop(msg, now, f"local gateway '{chosen}' of '{node.label}' no longer exists")
            return None
        return nxt

    def _deliver(self, msg: Message, node: Node, now: int):
        msg.finish(MessageStatus.DELIVERED, now)
        node.delivered += 1
        self.delivered += 1
        self.hops_used.append(msg.hop_count)
        self.log.add(
            "MSG",
            f"message {msg.mid} delivered to '{node.label}' after {msg.hop_count} hop(s): "
            + " -> ".join(msg.trace),
        )

    def _drop(self, msg: Message, now: int, reason: str):
        msg.finish(MessageStatus.DROPPED, now, reason)
        self.dropped += 1
        self.log.add("MSG", f"message {msg.mid} dropped: {reason}")
