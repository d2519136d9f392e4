"""Encoding, dispatch, query and recording services."""
