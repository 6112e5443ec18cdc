"""HTTP administrative surface."""
