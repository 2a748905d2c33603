"""
Patterns Package: the risk pattern catalog.

Modules:
    criteria: definition and match-criteria dataclasses
    strategies: named custom matchers
    registry: ordered, validated catalog (load / get_registry)
    exploit, rug_pull, cost, permission, advanced: the built-in definitions
"""
