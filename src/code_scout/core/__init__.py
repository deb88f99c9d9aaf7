"""Turn engine, transport, and the pieces tools share."""
