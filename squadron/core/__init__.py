"""Collaborators: git worktrees, tmux sessions, instances, storage, pull requests."""
