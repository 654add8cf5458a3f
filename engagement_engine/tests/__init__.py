"""Test suite for the Engagement Engine."""
