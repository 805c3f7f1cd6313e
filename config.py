SIM_CONFIG = {
    # Clock
    "tick_period_ms": 500,            # simulated time per tick
    "min_tick_period_ms": 100,
    "max_tick_period_ms": 2000,
    "sim_time_s": None,               # headless run length (None = until closed)
    # Protocols
    "initial_ttl": 10,                # hop budget of a fresh message
    "gateway_dead_multiplier": 3,     # missed announcement windows before a gateway is forgotten
    "message_grace_ms": 1000,         # terminal messages linger this long in the active set
    "seed": 42,                       # gateway pick on standard nodes
    # Event log
    "log_to_console": True,
    "log_announcements": False,       # one entry per GDP announcement (noisy)
    "log_dv_changes": True,           # ICRP install / refresh / withdraw
    "log_hops": True,                 # per-hop forwarding narration
    "max_log_entries": None,          # None = keep everything
    # Viz
    "world_size": (1000.0, 700.0),
    "cluster_size": (260.0, 180.0),
    "node_size": 140,
    "message_marker_size": 60,
    "label_offset": 12.0,
    "fps": 10,
    "log_tail_lines": 14,
}
