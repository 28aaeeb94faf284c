"""Kiddos video catalog backend."""
