"""Domain layer: types, errors, protocols and events with no transport dependencies."""
