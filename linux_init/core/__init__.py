"""Core — models, services, engine, and the step registry."""
