"""Terminal UI: event dispatcher, modes, overlays and the curses host."""
