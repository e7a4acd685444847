"""I/O layer — slot table, GPIO backends and sensor sampling."""
