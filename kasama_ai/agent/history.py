"""Short-term interaction history per (user, topic), used as prompt context only."""
from __future__ import annotations

from collections import OrderedDict, deque

from kasama_ai.core.contracts.requests import Interaction

MAX_SNIPPET = 600


def _snip(text: str) -> str:
    return text if len(text) <= MAX_SNIPPET else text[:MAX_SNIPPET] + "…"


class ConversationHistory:
    def __init__(self, max_turns: int = 10, max_keys: int = 10000):
        self.max_turns = max_turns
        self.max_keys = max_keys
        self._turns: OrderedDict[tuple[str, str], deque[Interaction]] = OrderedDict()

    def recent(self, user_id: str, topic: str) -> list[Interaction]:
        turns = self._turns.get((user_id, topic))
        return list(turns) if turns else []

    def append(self, user_id: str, topic: str, prompt: str, response: str) -> None:
        key = (user_id, topic)
        turns = self._turns.get(key)
        if turns is None:
            turns = deque(maxlen=self.max_turns)
            self._turns[key] = turns
        self._turns.move_to_end(key)
        turns.append(Interaction(prompt=_snip(prompt), response=_snip(response)))
        while len(self._turns) > self.max_keys:
            self._turns.popitem(last=False)

    def forget(self, user_id: str) -> int:
        keys = [k for k in self._turns if k[0] == user_id]
        for k in keys:
            del self._turns[k]
        return len(keys)
