"""Sample product service and client used to demonstrate contract testing end to end."""
