"""Static topic → destination routing."""

from __future__ import annotations

from collections.abc import Mapping, Sequence


class TopicRouter:
    """Maps a source topic to the destinations registered for it.

    One topic may fan out to several destinations and a destination may be
    fed by several topics. The table is copied at construction and never
    changes afterwards.
    """

    def __init__(self, routes: Mapping[str, Sequence[str]]) -> None:
        self._routes: dict[str, tuple[str, ...]] = {
            topic: tuple(destinations) for topic, destinations in routes.items()
        }

    def destinations_for(self, topic: str) -> tuple[str, ...]:
        """Return the destinations for *topic*, or ``()`` if it has no route."""
        return self._routes.get(topic, ())

    @property
    def topics(self) -> list[str]:
        return list(self._routes)

    @property
    def destinations(self) -> list[str]:
        """Unique destination names across all routes, in first-seen order."""
        seen: dict[str, None] = {}
        for destinations in self._routes.values():
            for name in destinations:
                seen.setdefault(name, None)
        return list(seen)
