"""Realpad inventory web-service integration."""
