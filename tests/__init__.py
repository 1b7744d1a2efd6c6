"""Tests for the Tapo Hub integration."""
