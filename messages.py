from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class MessageStatus(Enum):
    MOVING = "moving"
    DELIVERED = "delivered"
    DROPPED = "dropped"


@dataclass
class Message:
    """Application message, addressed by (cluster, node name) at both ends."""
    mid: int
    src_cluster: int
    src_name: str
    dst_cluster: int
    dst_name: str
    payload: str
    ttl: int
    current_node: int
    created_at: int
    trace: List[str] = field(default_factory=list)
    hop_count: int = 0
    status: MessageStatus = MessageStatus.MOVING
    finished_at: Optional[int] = None
    reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not MessageStatus.MOVING

    def finish(self, status: MessageStatus, now: int, reason: Optional[str] = None):
        if self.is_terminal:
            return
        self.status = status
        self.finished_at = now
        self.reason = reason
