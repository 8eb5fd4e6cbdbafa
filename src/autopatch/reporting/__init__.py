"""Session event logs and the Markdown patch-cycle report."""
