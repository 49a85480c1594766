"""Tests for boss-orchestrator."""
