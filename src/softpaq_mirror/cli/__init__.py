"""Command-line interface for softpaq-mirror."""
