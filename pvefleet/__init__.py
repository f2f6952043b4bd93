"""Proxmox VM fleet lifecycle orchestration with a versioned resource store."""

from __future__ import annotations

__version__ = '0.1.0'
