"""Dispatch operations exposed over HTTP."""
