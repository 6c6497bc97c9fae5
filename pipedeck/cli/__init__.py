"""Interactive session: state machine, command runner, rendering and the Textual host."""
