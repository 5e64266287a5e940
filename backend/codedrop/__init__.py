"""Share a file, get a short code, download it before it expires."""
