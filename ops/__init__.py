"""Operational controls (graceful stop)."""
