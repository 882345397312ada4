"""Core package of EnvVault: vault format, store, persistence and environments."""
