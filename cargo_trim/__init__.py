"""Classify and clean crates cached by Cargo."""
