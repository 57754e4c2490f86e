"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskDraft, Progress) + record mapping
- slot_store.py: SQLite-backed key/value slots for on-device data
- local_backend.py: guest-mode backend over the slots
- remote_backend.py: authenticated backend over the remote document store
"""
