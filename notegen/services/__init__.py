"""Collaborators of the provider layer: reasoning detection, rendering, credentials."""
