"""Test package for the leaderboard server."""
