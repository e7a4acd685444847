"""Bot layer — chat front ends other than the HTTP API."""
