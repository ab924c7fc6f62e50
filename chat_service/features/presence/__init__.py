"""User presence derived from open realtime connections."""
