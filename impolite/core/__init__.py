"""Login state machine, configuration and session discovery."""
