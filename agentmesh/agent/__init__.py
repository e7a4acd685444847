"""Agent layer — action execution and the runtime context that wires everything."""
