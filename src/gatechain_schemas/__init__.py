"""JSON Schemas bundled with gatechain as package data."""
