import asyncio
import math
import threading
from typing import Any, Dict, List, Optional, Tuple

import matplotlib.pyplot as plt
from matplotlib.animation import FuncAnimation
from matplotlib.collections import LineCollection
from matplotlib.patches import Rectangle
from matplotlib.widgets import Button

from messages import MessageStatus
from sim import Simulation

plt.style.use("seaborn-v0_8-darkgrid")

GATEWAY_COLOR = (0.95, 0.55, 0.15)
STANDARD_COLOR = (0.25, 0.55, 0.95)
STATUS_COLORS = {
    MessageStatus.MOVING: (1.0, 0.9, 0.2),
    MessageStatus.DELIVERED: (0.2, 0.95, 0.4),
    MessageStatus.DROPPED: (0.95, 0.2, 0.2),
}


def layout(snap: Dict[str, Any], cfg: Dict[str, Any]):
    """
    Place clusters on a grid and their members inside each box: gateways
    along the top edge, standard nodes on the rows below.
    Returns ({cid: (x, y, w, h)}, {nid: (x, y)}).
    """
    W, H = cfg["world_size"]
    cw, ch = cfg["cluster_size"]
    cids = sorted(snap["clusters"])
    cols = max(1, int(W // (cw + 40)))
    boxes: Dict[int, Tuple[float, float, float, float]] = {}
    for i, cid in enumerate(cids):
        row, col = divmod(i, cols)
        x = 20 + col * (cw + 40)
        y = H - 20 - ch - row * (ch + 60)
        boxes[cid] = (x, y, cw, ch)

    members: Dict[int, List[Dict[str, Any]]] = {cid: [] for cid in cids}
    for nid in sorted(snap["nodes"]):
        info = snap["nodes"][nid]
        if info["cluster_id"] in members:
            members[info["cluster_id"]].append(info)

    pos: Dict[int, Tuple[float, float]] = {}
    for cid, infos in members.items():
        x, y, w, h = boxes[cid]
        gws = [n for n in infos if n["role"] == "gateway"]
        std = [n for n in infos if n["role"] != "gateway"]
        for k, n in enumerate(gws):
            pos[n["nid"]] = (x + w * (k + 1) / (len(gws) + 1), y + h - 30)
        per_row = 4
        for k, n in enumerate(std):
            r, c = divmod(k, per_row)
            pos[n["nid"]] = (x + w * (c + 1) / (per_row + 1), y + h - 80 - r * 40)
    return boxes, pos


def format_node_panel(info: Optional[Dict[str, Any]], now_ms: int) -> str:
    if info is None:
        return "Click a node to inspect it\n(N cycles through nodes)"
    lines = [
        f"NODE {info['name']}@{info['cluster_name']}",
        f"id {info['nid']}  {info['role']}",
        f"orig {info['originated']}  fwd {info['forwarded']}  dlv {info['delivered']}",
        "",
    ]
    if info["role"] == "gateway":
        lines.append("Dest      | Next hop       | Cost")
        lines.append("-" * 34)
        if not info["routes"]:
            lines.append("(empty)")
        for dest, r in info["routes"].items():
            hop = f"{r['next_hop']}@{r['next_hop_cluster']}"
            lines.append(f"{dest[:9]:<9} | {hop[:14]:<14} | {r['cost']}")
    else:
        lines.append("Local gateway | last heard")
        lines.append("-" * 28)
        if not info["local_gateways"]:
            lines.append("(none)")
        for name, ts in sorted(info["local_gateways"].items()):
            lines.append(f"{name[:13]:<13} | {now_ms - ts}ms ago")
    return "\n".join(lines)


def format_log_tail(entries: List[Any], n: int, width: int = 90) -> str:
    tail = entries[-n:] if n > 0 else []
    return "\n".join(str(e)[:width] for e in tail)


class LiveArtist2D:
    def __init__(self, sim: Simulation):
        self.sim = sim
        self.cfg = sim.cfg
        self.selected: Optional[int] = None
        self.anim = None  # strong ref to animation
        self._pos: Dict[int, Tuple[float, float]] = {}
        self._dynamic: List[Any] = []

        self.fig = plt.figure(figsize=(16, 9))
        gs = self.fig.add_gridspec(2, 2, width_ratios=[2, 1], height_ratios=[3, 2], wspace=0.15, hspace=0.15)
        self.ax = self.fig.add_subplot(gs[0, 0])
        self.ax_rt = self.fig.add_subplot(gs[0, 1])
        self.ax_log = self.fig.add_subplot(gs[1, :])
        self.ax_rt.axis("off")
        self.ax_log.axis("off")

        W, H = self.cfg["world_size"]
        self.ax.set_xlim(0, W)
        self.ax.set_ylim(0, H)
        self.ax.set_aspect("equal", adjustable="box")
        self.ax.set_xticks([])
        self.ax.set_yticks([])
        self.ax.set_title("Two-tier clusters: GDP / ICRP")

        self.links = LineCollection([], linewidths=2.5, alpha=0.8, colors=(0.6, 0.3, 0.8, 0.8))
        self.ax.add_collection(self.links)
        self.scatter = self.ax.scatter([], [], s=self.cfg["node_size"], zorder=3)
        self.msg_scatter = self.ax.scatter([], [], s=self.cfg["message_marker_size"],
                                           marker="D", zorder=4, edgecolors="black")

        self.hud = self.fig.text(0.01, 0.985, "", ha="left", va="top", fontsize=10)
        self.rt_text = self.ax_rt.text(0.02, 0.98, "", ha="left", va="top", fontsize=9,
                                       family="monospace", transform=self.ax_rt.transAxes)
        self.log_text = self.ax_log.text(0.0, 1.0, "", ha="left", va="top", fontsize=8,
                                         family="monospace", transform=self.ax_log.transAxes)

        ax_play = self.fig.add_axes([0.55, 0.01, 0.09, 0.045])
        ax_step = self.fig.add_axes([0.65, 0.01, 0.09, 0.045])
        ax_slow = self.fig.add_axes([0.75, 0.01, 0.09, 0.045])
        ax_fast = self.fig.add_axes([0.85, 0.01, 0.09, 0.045])
        self.btn_play = Button(ax_play, "Play/Pause")
        self.btn_step = Button(ax_step, "Step")
        self.btn_slow = Button(ax_slow, "Slower")
        self.btn_fast = Button(ax_fast, "Faster")
        self.btn_play.on_clicked(self._toggle)
        self.btn_step.on_clicked(self._step)
        self.btn_slow.on_clicked(lambda _e: self._scale_period(1.5))
        self.btn_fast.on_clicked(lambda _e: self._scale_period(1 / 1.5))

        self.fig.canvas.mpl_connect("key_press_event", self._on_key)
        self.fig.canvas.mpl_connect("button_press_event", self._on_click)

        interval_ms = int(1000 / self.cfg["fps"])
        self.anim = FuncAnimation(self.fig, self.update, interval=interval_ms,
                                  blit=False, cache_frame_data=False)

    # -------- Controls --------

    def _toggle(self, _event=None):
        self.sim.toggle()

    def _step(self, _event=None):
        if not self.sim.running:
            self.sim.step()

    def _scale_period(self, factor: float):
        lo, hi = self.cfg["min_tick_period_ms"], self.cfg["max_tick_period_ms"]
        target = int(round(self.sim.period_ms * factor))
        self.sim.set_tick_period(min(hi, max(lo, target)))

    def _cycle_selection(self):
        ids = sorted(self._pos)
        if not ids:
            self.selected = None
            return
        if self.selected not in ids:
            self.selected = ids[0]
        else:
            self.selected = ids[(ids.index(self.selected) + 1) % len(ids)]

    def _on_key(self, event):
        if event.key in ("p", "P", " "):
            self._toggle()
        elif event.key in ("s", "S"):
            self._step()
        elif event.key in ("+", "="):
            self._scale_period(1 / 1.5)
        elif event.key in ("-", "_"):
            self._scale_period(1.5)
        elif event.key in ("n", "N"):
            self._cycle_selection()
        elif event.key in ("q", "Q", "escape"):
            plt.close(self.fig)

    def _on_click(self, event):
        if event.inaxes is not self.ax or event.xdata is None:
            return
        best, best_d = None, 25.0
        for nid, (x, y) in self._pos.items():
            d = math.hypot(event.xdata - x, event.ydata - y)
            if d < best_d:
                best, best_d = nid, d
        self.selected = best

    # -------- Drawing --------

    def _clear_dynamic(self):
        for artist in self._dynamic:
            artist.remove()
        self._dynamic = []

    def update(self, _frame):
        snap = self.sim.snapshot()
        boxes, self._pos = layout(snap, self.cfg)
        self._clear_dynamic()

        for cid, (x, y, w, h) in boxes.items():
            rect = Rectangle((x, y), w, h, fill=False, linewidth=1.5, linestyle="--", edgecolor="gray")
            self.ax.add_patch(rect)
            self._dynamic.append(rect)
            self._dynamic.append(self.ax.text(x + 6, y + h - 6, snap["clusters"][cid],
                                              ha="left", va="top", fontsize=10, fontweight="bold"))

        nids = [nid for nid in snap["nodes"] if nid in self._pos]
        offsets = [self._pos[nid] for nid in nids]
        colors = [GATEWAY_COLOR if snap["nodes"][nid]["role"] == "gateway" else STANDARD_COLOR for nid in nids]
        widths = [3.0 if nid == self.selected else 0.5 for nid in nids]
        self.scatter.set_offsets(offsets if offsets else [[math.nan, math.nan]])
        if colors:
            self.scatter.set_facecolor(colors)
            self.scatter.set_edgecolor("black")
            self.scatter.set_linewidths(widths)
        off = self.cfg["label_offset"]
        for nid in nids:
            x, y = self._pos[nid]
            self._dynamic.append(self.ax.text(x, y + off, snap["nodes"][nid]["name"],
                                              ha="center", va="bottom", fontsize=9))

        segs = [
            (self._pos[a], self._pos[b]) for a, b in snap["links"].values()
            if a in self._pos and b in self._pos
        ]
        self.links.set_segments(segs)

        m_offsets, m_colors = [], []
        for k, msg in enumerate(snap["messages"]):
            if msg.current_node not in self._pos:
                continue
            x, y = self._pos[msg.current_node]
            # fan out markers that share a node
            x += 10 + (k % 4) * 8
            y -= 14
            m_offsets.append((x, y))
            m_colors.append(STATUS_COLORS[msg.status])
            self._dynamic.append(self.ax.text(x, y - 10, str(msg.ttl), ha="center", va="top", fontsize=7))
        self.msg_scatter.set_offsets(m_offsets if m_offsets else [[math.nan, math.nan]])
        if m_colors:
            self.msg_scatter.set_facecolor(m_colors)

        info = self.sim.describe_node(self.selected) if self.selected is not None else None
        if info is None:
            self.selected = None
        self.rt_text.set_text(format_node_panel(info, snap["time_ms"]))
        self.log_text.set_text(format_log_tail(snap["log"], self.cfg["log_tail_lines"]))

        s = self.sim.stats()
        state = "RUNNING" if snap["running"] else "PAUSED"
        self.hud.set_text(
            f"{state}   tick {snap['tick']}   t={snap['time_ms']}ms   {snap['period_ms']}ms/tick   "
            f"Sent: {s['sent']}   Delivered: {s['delivered']}   Dropped: {s['dropped']}   "
            f"In flight: {s['in_flight']}"
        )
        return [self.scatter, self.links, self.msg_scatter, self.hud, self.rt_text, self.log_text, *self._dynamic]


def run_live_viz(sim: Simulation):
    """Run the asyncio clock in a background thread and show a live view."""

    def _run():
        asyncio.run(sim.run())

    t = threading.Thread(target=_run, daemon=True)
    t.start()

    LiveArtist2D(sim)
    plt.show()
    sim.close()
    t.join(timeout=sim.period_ms / 1000.0 + 1.0)
    sim.report()
