"""Tests for the vesync_bridge package."""
