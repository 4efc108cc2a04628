"""Tests for contact intake."""
