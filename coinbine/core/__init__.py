"""Consolidation core: discovery, swap planning, bridging and run orchestration."""
