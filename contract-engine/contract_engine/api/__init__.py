"""HTTP routes shared by the sample provider application."""
