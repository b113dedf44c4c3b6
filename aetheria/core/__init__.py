"""Session core: data model, character engine, state machine."""
