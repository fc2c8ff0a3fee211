"""Process settings and structured payload schemas shared across packages."""
