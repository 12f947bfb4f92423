"""State/store layer.

Each store is the single owner of its collection. Cross-collection rules
(link integrity, booking synchronization) live in :mod:`fdms.sync` and only
ever go through the store APIs.
"""
