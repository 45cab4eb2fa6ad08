"""Domain layer — pure data, errors, ports and transition tables."""
