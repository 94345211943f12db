"""External collaborators: Azure SDK, device execution and the agent CLI."""
