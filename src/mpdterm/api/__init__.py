"""API clients for talking to the music player daemon."""
