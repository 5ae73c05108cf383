"""Realtime store backends and change notification transports."""
