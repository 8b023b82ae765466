"""
Conversation transcript chunker.

A transcript is flattened into exchange paragraphs (one user turn plus the
replies that follow it) and then chunked like a document.
"""

from typing import Any, Dict, List, Sequence, Union

from nexusrag.models.conversation import ConversationTurn
from nexusrag.rag.chunking.base import BaseChunker

TurnLike = Union[ConversationTurn, Dict[str, Any]]

ROLE_LABELS = {"user": "User", "assistant": "Assistant"}


def _as_turn(turn: TurnLike) -> ConversationTurn:
    if isinstance(turn, ConversationTurn):
        return turn
    return ConversationTurn.model_validate(turn)


def conversation_to_paragraphs(turns: Sequence[TurnLike]) -> List[str]:
    """
    Flatten turns into paragraphs.

    Every user turn opens a new paragraph; other turns are appended to the
    current one on their own line. Lines are prefixed with the role label.
    Turns with blank content are dropped.

    Example:
        >>> conversation_to_paragraphs([
        ...     {"role": "user", "content": "Hi"},
        ...     {"role": "assistant", "content": "Hello!"},
        ...     {"role": "user", "content": "Bye"},
        ... ])
        ['User: Hi\\nAssistant: Hello!', 'User: Bye']
    """
    paragraphs: List[str] = []
    current: List[str] = []

    for raw in turns:
        turn = _as_turn(raw)
        content = turn.content.strip()
        if not content:
            continue

        label = ROLE_LABELS.get(turn.role, turn.role.capitalize())
        line = f"{label}: {content}"

        if turn.role == "user" and current:
            paragraphs.append("\n".join(current))
            current = []
        current.append(line)

    if current:
        paragraphs.append("\n".join(current))
    return paragraphs


class ConversationChunker(BaseChunker):
    def split(self, source: Sequence[TurnLike]) -> List[str]:
        paragraphs = conversation_to_paragraphs(source)
        if not paragraphs or self._too_short("\n\n".join(paragraphs)):
            return []
        return self._chunk_paragraphs(paragraphs)
