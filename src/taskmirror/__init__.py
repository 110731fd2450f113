"""
taskmirror: client-side mirror of a user's task collection.

Live queries against a document store feed a TTL cache; the provider layers
filtering, search debounce and pagination on top of the mirrored snapshot.
"""
