"""Host service backends."""
