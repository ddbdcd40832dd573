"""Shared core helpers for the receive harness."""
from __future__ import annotations

SERVICE_NAME = "receive-harness"
