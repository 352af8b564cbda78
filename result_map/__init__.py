"""Viewport-synchronized map result engine."""
