"""State layer.

Holds the per-session target cache and the messages used to mutate it.
Only the owning device session loop applies changes to the store.
"""
