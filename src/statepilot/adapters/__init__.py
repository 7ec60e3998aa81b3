"""Adapters implementing the record-store port and loading snapshot documents."""
