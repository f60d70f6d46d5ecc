"""
MemVerse Core - verse delivery scheduling engine and storage.

Pace policy, delivery orchestration, periodic sweep, on-demand dashboard
resolution, and the SQLite stores they run against.
"""
