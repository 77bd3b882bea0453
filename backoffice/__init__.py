"""Administrative back-office API for the services marketplace."""
