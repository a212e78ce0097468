"""Round pipeline components."""
