"""Commission Tracker test suite."""
