"""Real-time location relay for shared trackers."""
