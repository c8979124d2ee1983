"""Command-line interface for the Homestead sync core."""
