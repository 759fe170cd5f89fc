"""``kiar`` command line interface."""
