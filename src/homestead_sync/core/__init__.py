"""Core logic of the Homestead sync core.

- sync: outbox, cycle engine, conflict resolution and remote clients
- integrations: adapter registry, materializers and orchestration
- scheduler: timers driving both
"""

__all__: list[str] = []
