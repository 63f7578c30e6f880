"""Test suite for the AICS plugin host."""
