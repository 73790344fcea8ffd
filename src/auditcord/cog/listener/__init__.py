"""Gateway event listeners."""
