"""Service layer for the Love Wall application."""
