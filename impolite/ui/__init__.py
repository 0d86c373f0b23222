"""Terminal front-end: CLI, prompts and output."""
