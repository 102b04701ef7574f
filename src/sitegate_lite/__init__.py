"""sitegate-lite: embedded admin HTTP front end with request gating."""
