"""Status web server for Fire Watch."""
