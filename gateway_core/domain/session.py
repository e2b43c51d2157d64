from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Literal, Optional

from gateway_core.domain.exceptions import PermissionDeniedError


SessionState = Literal["CREATED", "ACTIVE"]


@dataclass
class ConversationSession:
    """本地会话簿记：只记录路由后续 send/history 所需的最少信息。

    没有显式关闭状态，会话的过期由 Provider 决定。
    """

    conversation_id: str
    owner: Optional[str] = None
    state: SessionState = "CREATED"

    def touch(self) -> None:
        self.state = "ACTIVE"


class SessionRegistry:
    """线程安全、有容量上限的会话表（LRU）。

    只跟踪经由本网关创建的会话；未知 id 直接放行，由 Provider 判定。
    """

    def __init__(self, max_sessions: int = 1024):
        self._max = max(1, max_sessions)
        self._sessions: "OrderedDict[str, ConversationSession]" = OrderedDict()
        self._lock = threading.Lock()

    def register(self, conversation_id: str, owner: Optional[str] = None) -> ConversationSession:
        session = ConversationSession(conversation_id=conversation_id, owner=owner)
        with self._lock:
            self._sessions[conversation_id] = session
            self._sessions.move_to_end(conversation_id)
            while len(self._sessions) > self._max:
                self._sessions.popitem(last=False)
        return session

    def get(self, conversation_id: str) -> Optional[ConversationSession]:
        with self._lock:
            return self._sessions.get(conversation_id)

    def claim(self, conversation_id: str, caller: Optional[str] = None) -> Optional[ConversationSession]:
        """校验调用方对会话的所有权，并把会话推进到 ACTIVE。"""

        with self._lock:
            session = self._sessions.get(conversation_id)
            if session is None:
                return None
            if session.owner is not None and session.owner != caller:
                raise PermissionDeniedError(
                    "Conversation belongs to another caller",
                    cause={"owner_mismatch": True},
                )
            session.touch()
            self._sessions.move_to_end(conversation_id)
            return session

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, conversation_id: object) -> bool:
        with self._lock:
            return conversation_id in self._sessions
