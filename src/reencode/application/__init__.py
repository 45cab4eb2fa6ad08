"""Application layer — correlation, engine gateway and run orchestration."""
