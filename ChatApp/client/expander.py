from datetime import datetime, timezone
from typing import Iterable

from ChatApp.client.state import DisplayMessage, Exchange, as_utc

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _sort_key(exchange: Exchange) -> datetime:
    return as_utc(exchange.created_at) or _EPOCH


# Expands stored exchanges into the ordered list of display messages.
# An exchange whose response is missing or equal to its prompt yields only the user message.
def expand(exchanges: Iterable[Exchange]) -> list[DisplayMessage]:
    messages: list[DisplayMessage] = []
    for ex in sorted(exchanges, key=_sort_key):
        messages.append(
            DisplayMessage(
                id=f"user-{ex.id}",
                role="user",
                content=ex.query,
                session_id=ex.session_id,
                created_at=ex.created_at,
                query=ex.query,
                datatext=ex.query,
            )
        )
        if ex.datatext and ex.datatext != ex.query:
            messages.append(
                DisplayMessage(
                    id=f"assistant-{ex.id}",
                    role="assistant",
                    content=ex.datatext,
                    session_id=ex.session_id,
                    created_at=ex.created_at,
                    query=ex.query,
                    datatext=ex.datatext,
                )
            )
    return messages
