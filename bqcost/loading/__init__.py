"""Single-flight project loading: state machine, background worker, status polling."""
