from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional


@dataclass
class Route:
    next_hop: str           # gateway name, unique only within next_hop_cluster
    next_hop_cluster: int
    cost: int
    updated_at: int = 0     # simulated ms

    def via(self, node: Any) -> bool:
        return self.next_hop == node.name and self.next_hop_cluster == node.cluster_id


def self_route(node: Any, now: int = 0) -> Route:
    """Seed entry of a gateway: its own cluster, reached through itself at cost 0."""
    return Route(next_hop=node.name, next_hop_cluster=node.cluster_id, cost=0, updated_at=now)


def _cluster_label(names: Optional[Dict[int, str]], cid: int) -> str:
    if names and cid in names:
        return names[cid]
    return f"#{cid}"


def propagate(
    sender: Any,
    receiver: Any,
    now: int,
    *,
    log: Any = None,
    cluster_names: Optional[Dict[int, str]] = None,
) -> int:
    """
    One direction of the distance-vector exchange over a gateway link.

    cost_via_sender = 1 + sender's cost. A route is installed when the receiver
    has none or the new one is strictly cheaper; a route already through the
    sender follows the sender's cost up or down. Routes through the sender for
    clusters the sender no longer advertises are withdrawn. The receiver's own
    cluster is never learned from a neighbour.

    Returns the number of rows changed.
    """
    rt = receiver.rt
    changes = 0
    for dest, theirs in list(sender.rt.items()):
        if dest == receiver.cluster_id:
            continue
        cost_via_sender = theirs.cost + 1
        existing = rt.get(dest)
        if existing is None or cost_via_sender < existing.cost:
            rt[dest] = Route(sender.name, sender.cluster_id, cost_via_sender, now)
            changes += 1
            if log is not None:
                log.add(
                    "ICRP",
                    f"gateway '{receiver.label}' learned route to cluster "
                    f"'{_cluster_label(cluster_names, dest)}' via '{sender.label}' (cost {cost_via_sender})",
                )
        elif existing.via(sender) and cost_via_sender != existing.cost:
            old = existing.cost
            rt[dest] = Route(sender.name, sender.cluster_id, cost_via_sender, now)
            changes += 1
            if log is not None:
                log.add(
                    "ICRP",
                    f"gateway '{receiver.label}' updated route to cluster "
                    f"'{_cluster_label(cluster_names, dest)}' via '{sender.label}' (cost {old} -> {cost_via_sender})",
                )

    stale = [dest for dest, r in rt.items() if r.via(sender) and dest not in sender.rt]
    for dest in stale:
        del rt[dest]
        changes += 1
        if log is not None:
            log.add(
                "ICRP",
                f"gateway '{receiver.label}' withdrew route to cluster "
                f"'{_cluster_label(cluster_names, dest)}' via '{sender.label}' (no longer advertised)",
            )
    return changes


def withdraw_via(
    receiver: Any,
    neighbor: Any,
    *,
    log: Any = None,
    cluster_names: Optional[Dict[int, str]] = None,
) -> List[int]:
    """Drop every row of receiver whose next hop is neighbor (link gone)."""
    gone = [dest for dest, r in receiver.rt.items() if r.via(neighbor)]
    for dest in gone:
        del receiver.rt[dest]
        if log is not None:
            log.add(
                "ICRP",
                f"gateway '{receiver.label}' dropped route to cluster "
                f"'{_cluster_label(cluster_names, dest)}' (link to '{neighbor.label}' removed)",
            )
    return gone


def forget_cluster(gateways: Iterable[Any], cid: int) -> int:
    removed = 0
    for gw in gateways:
        if gw.rt.pop(cid, None) is not None:
            removed += 1
    return removed


def run_route_exchange(
    links: Iterable[Any],
    resolve: Callable[[int], Optional[Any]],
    now: int,
    *,
    log: Any = None,
    cluster_names: Optional[Dict[int, str]] = None,
) -> int:
    """ICRP pass: every link, both directions, in link creation order."""
    changes = 0
    for link in list(links):
        a = resolve(link.a_id)
        b = resolve(link.b_id)
        if a is None or b is None:
            # endpoint vanished since the link list was read
            continue
        changes += propagate(a, b, now, log=log, cluster_names=cluster_names)
        changes += propagate(b, a, now, log=log, cluster_names=cluster_names)
    return changes
