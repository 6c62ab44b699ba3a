"""Routing resolution and rule management exposed over HTTP."""
