"""Unit conversions, display formatting and input validation."""
