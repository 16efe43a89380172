"""Protocol engine: framing, device state, command dispatch and stream buffering."""
