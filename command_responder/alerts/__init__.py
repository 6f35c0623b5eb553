"""Alert handling: annotation overrides, dispatch, and command actions."""
