"""HTTP service exposing the orchestrator."""
