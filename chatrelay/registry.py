"""In-memory room membership, keyed by connection id.

Rooms are plain labels: a room exists only while some connection (or some
stored message) names it. Nothing here is persisted.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class Membership:
    room: str
    username: Optional[str] = None


class RoomRegistry:
    def __init__(self):
        self._members: Dict[str, Membership] = {}

    def join(self, conn_id: str, room: str, username: Optional[str] = None) -> Membership:
        """Replace whatever membership the connection had."""
        membership = Membership(room=room, username=username)
        self._members[conn_id] = membership
        return membership

    def leave(self, conn_id: str) -> Optional[Membership]:
        return self._members.pop(conn_id, None)

    def membership(self, conn_id: str) -> Optional[Membership]:
        return self._members.get(conn_id)

    def current_room(self, conn_id: str) -> Optional[str]:
        m = self._members.get(conn_id)
        return m.room if m else None

    def current_username(self, conn_id: str) -> Optional[str]:
        m = self._members.get(conn_id)
        return m.username if m else None

    def members(self, room: str) -> List[str]:
        return [cid for cid, m in self._members.items() if m.room == room]

    def __len__(self):
        return len(self._members)
