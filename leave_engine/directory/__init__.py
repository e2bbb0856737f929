"""Team directory — the identity collaborator used for capacity checks."""
