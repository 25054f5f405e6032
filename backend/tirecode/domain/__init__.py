"""Transport-independent tire size rules and the error taxonomy."""
