"""
Task subsystem.

Components:
- task_models.py: data structures (Task, Subtask, Attachment, enums)
- task_codec.py: record <-> Task codec
- task_cache.py: TTL cache of pushed snapshots
- subscriptions.py: one live query per user, fanned out to TaskStreams
- task_filter.py: pure filter engine, memo and search debounce
- paginator.py: growable page window
- task_views.py: derived views (overdue, due today, statistics)
- task_service.py: mutations against the store
- task_provider.py: the surface application code talks to
"""
