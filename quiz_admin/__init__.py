"""Quiz Admin: session, rate limiting and route authorization for the quiz admin console."""
