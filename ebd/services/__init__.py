"""Business services. Each takes the SQLAlchemy session explicitly and flushes; callers commit."""
