"""Process lifecycle: graceful shutdown."""
