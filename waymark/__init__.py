"""Waymark routes feedback events to external notification targets."""
