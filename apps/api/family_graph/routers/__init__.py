from family_graph.routers import accounts, family, health, members

__all__ = [
    "health",
    "members",
    "family",
    "accounts",
]
