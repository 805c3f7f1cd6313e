from collections import defaultdict
from typing import Any, Dict, List, Tuple


def announce_gateways(nodes: Any, now: int, *, log: Any = None) -> int:
    """
    Every gateway announces itself to every standard node of its cluster.
    Full re-announcement each tick is the liveness signal. Returns the
    number of announcements delivered.
    """
    gateways: Dict[int, List[Any]] = defaultdict(list)
    standard: Dict[int, List[Any]] = defaultdict(list)
    for node in nodes:
        (gateways if node.is_gateway else standard)[node.cluster_id].append(node)

    heard = 0
    for cid, gws in gateways.items():
        for gw in gws:
            for node in standard.get(cid, ()):
                node.hear_gateway(gw.name, now)
                heard += 1
                if log is not None:
                    log.add("GDP", f"gateway '{gw.label}' announced to '{node.name}'")
    return heard


def expire_gateways(nodes: Any, now: int, timeout_ms: int, *, log: Any = None) -> List[Tuple[Any, str]]:
    """Forget gateways a standard node has not heard from for longer than timeout_ms."""
    expired = []
    for node in nodes:
        if node.is_gateway:
            continue
        for gw_name in node.expire_gateways(now, timeout_ms):
            expired.append((node, gw_name))
            if log is not None:
                log.add("GDP", f"standard node '{node.label}' dropped silent gateway '{gw_name}'")
    return expired


def run_discovery(nodes: Any, now: int, period_ms: int, cfg: Dict[str, Any], log: Any):
    nodes = list(nodes)
    timeout = cfg.get("gateway_dead_multiplier", 3) * period_ms
    announce_log = log if cfg.get("log_announcements", False) else None
    heard = announce_gateways(nodes, now, log=announce_log)
    expired = expire_gateways(nodes, now, timeout, log=log)
    return heard, expired
