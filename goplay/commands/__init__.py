"""goplay.commands - Long-running modes."""
