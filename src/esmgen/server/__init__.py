"""Static file server for converted packages."""
