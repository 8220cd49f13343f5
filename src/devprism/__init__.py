"""dev-prism: isolated development sessions with deterministic ports."""
