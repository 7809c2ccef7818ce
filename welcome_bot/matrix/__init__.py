"""Matrix transport: collaborator contracts and the mautrix adapter."""
